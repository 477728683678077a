from __future__ import annotations

import math
from typing import Any, Dict, Hashable, List, Mapping, Optional, Tuple

import numpy as np

from ..model.instance import LPInstance

Label = Tuple[Hashable, ...]


def build_standard_form(
    instance: LPInstance,
    artificial_signs: Optional[Mapping[Label, float]] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, Dict[str, Any], List[int]]:
    """
    Convert the instance to ``max c.x  s.t.  A x = b, x >= 0``.

    Every column of the result carries a stable label so a basis can be
    carried from one build to the next after rows are appended:

    - ``("x", j)`` shifted structural (``("x+", j)``/``("x-", j)`` when free)
    - ``("slack", i)`` logical of row ``i`` (``("slack_lo", i)`` for the lower
      side of a range row), ``("ub", j)`` slack of a finite upper bound
    - ``("art",) + row_label`` artificial of a standard row

    With ``artificial_signs`` left as None (cold start) artificials are added
    wherever the logical basis is infeasible and the initial basis is returned.
    Otherwise (warm start) artificials are created for equality rows and for
    the given labels with the given column signs, and the returned basis is
    empty; ``meta["row_natural"]`` maps each row label to the column that can
    start basic in it.
    """

    lower, upper = instance.column_bounds()
    objective = instance.objective()
    n_orig = instance.num_columns

    labels: List[Label] = []
    components: List[List[Tuple[int, float]]] = []
    offsets = np.zeros(n_orig)
    upper_rows: List[Tuple[int, float, int]] = []

    for j in range(n_orig):
        lb, ub = lower[j], upper[j]
        if math.isfinite(lb):
            idx = len(labels)
            labels.append(("x", j))
            components.append([(idx, 1.0)])
            offsets[j] = lb
            if math.isfinite(ub):
                upper_rows.append((idx, ub - lb, j))
        elif math.isfinite(ub):
            # x = ub - x'
            idx = len(labels)
            labels.append(("x", j))
            components.append([(idx, -1.0)])
            offsets[j] = ub
        else:
            idx_pos = len(labels)
            labels.extend([("x+", j), ("x-", j)])
            components.append([(idx_pos, 1.0), (idx_pos + 1, -1.0)])
    n_struct = len(labels)

    transform = np.zeros((n_orig, n_struct))
    for j, comps in enumerate(components):
        for idx, coef in comps:
            transform[j, idx] = coef
    dense = instance.matrix.to_dense() if instance.num_rows else np.zeros((0, n_orig))
    a_struct = dense @ transform
    shift = dense @ offsets

    # (row label, structural coefficients, rhs, logical label or None, logical sign)
    specs: List[Tuple[Label, np.ndarray, float, Optional[Label], float]] = []
    row_slots: List[List[int]] = []
    for i, row in enumerate(instance.rows):
        if not math.isfinite(row.rhs):
            # "<=" at +inf or ">=" at -inf: a free row, nothing to enforce
            row_slots.append([])
            continue
        rhs = row.rhs - shift[i]
        slots = [len(specs)]
        if row.sense == "<=":
            specs.append((("row", i), a_struct[i], rhs, ("slack", i), 1.0))
        elif row.sense == ">=":
            specs.append((("row", i), a_struct[i], rhs, ("slack", i), -1.0))
        elif row.sense == "==":
            specs.append((("row", i), a_struct[i], rhs, None, 0.0))
        else:
            specs.append((("row", i), a_struct[i], rhs, ("slack", i), 1.0))
            slots.append(len(specs))
            specs.append((("row_lo", i), a_struct[i], rhs - float(row.range_value), ("slack_lo", i), -1.0))
        row_slots.append(slots)
    for idx, width, j in upper_rows:
        coeffs = np.zeros(n_struct)
        coeffs[idx] = 1.0
        specs.append((("ub_row", j), coeffs, width, ("ub", j), 1.0))

    m = len(specs)
    cold = artificial_signs is None
    columns: List[Tuple[Label, int, float]] = []  # (label, row, coefficient)
    row_natural: Dict[Label, int] = {}
    artificial_indices: List[int] = []
    signs: Dict[Label, float] = {}
    basis: List[int] = []

    next_idx = n_struct
    for k, (row_label, _, rhs, logical, sign) in enumerate(specs):
        if logical is not None:
            columns.append((logical, k, sign))
            row_natural[row_label] = next_idx
            logical_idx = next_idx
            next_idx += 1
        art_label = ("art",) + tuple(row_label)
        if cold:
            if logical is not None and rhs * sign >= 0:
                basis.append(logical_idx)
                continue
            art_sign = 1.0 if rhs >= 0 else -1.0
        else:
            if logical is not None and art_label not in artificial_signs:
                continue
            art_sign = float(artificial_signs.get(art_label, 1.0))
        columns.append((art_label, k, art_sign))
        artificial_indices.append(next_idx)
        signs[art_label] = art_sign
        if logical is None:
            row_natural[row_label] = next_idx
        if cold:
            basis.append(next_idx)
        next_idx += 1

    n = next_idx
    A = np.zeros((m, n))
    b = np.zeros(m)
    for k, (_, coeffs, rhs, _, _) in enumerate(specs):
        A[k, :n_struct] = coeffs
        b[k] = rhs
    for offset, (label, k, coef) in enumerate(columns):
        A[k, n_struct + offset] = coef
        labels.append(label)

    c_raw = np.zeros(n)
    for j, comps in enumerate(components):
        for idx, coef in comps:
            c_raw[idx] += objective[j] * coef
    c = c_raw.copy() if instance.sense == "max" else -c_raw

    meta: Dict[str, Any] = {
        "labels": labels,
        "index": {label: idx for idx, label in enumerate(labels)},
        "row_labels": [spec[0] for spec in specs],
        "row_natural": row_natural,
        "row_slots": row_slots,
        "components": components,
        "offsets": offsets,
        "objective_constant": float(objective @ offsets),
        "artificial_indices": artificial_indices,
        "artificial_signs": signs,
        "num_structural": n_struct,
    }
    return A, b, c, meta, basis
