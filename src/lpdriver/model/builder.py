from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence, Union

from scipy import sparse

from ..exceptions import DimensionMismatch, DuplicateName, InvalidBound, NameRangeError, ConstructionError
from ..matrix import SparseMatrix
from ..schemas import Column, MatrixData, NameKind, Row, Sense
from .instance import InstanceState, LPInstance

logger = logging.getLogger(__name__)

MatrixLike = Union[SparseMatrix, MatrixData, sparse.spmatrix]


def check_bounds(column: Column, ordinal: int) -> None:
    lb, ub = column.lb, column.ub
    label = _label("column", ordinal, column.name)
    if math.isnan(lb) or math.isnan(ub):
        raise InvalidBound(f"{label} has a NaN bound.", ordinal=ordinal, name=column.name)
    if lb == math.inf or ub == -math.inf:
        raise InvalidBound(
            f"{label} has an unattainable bound pair [{lb}, {ub}].", ordinal=ordinal, name=column.name
        )
    if lb > ub:
        raise InvalidBound(f"{label} has lb {lb} > ub {ub}.", ordinal=ordinal, name=column.name)
    if not math.isfinite(column.objective):
        raise ConstructionError(
            f"{label} has a non-finite objective coefficient ({column.objective}).",
            ordinal=ordinal,
            name=column.name,
        )


def check_row(row: Row, ordinal: int) -> None:
    """
    Reject row limits the engines cannot use.

    An infinite rhs is only meaningful on the open side of an inequality
    (``<=`` at +inf, ``>=`` at -inf), where it leaves the row free.
    """
    rhs = row.rhs
    label = _label("row", ordinal, row.name)
    if math.isnan(rhs):
        raise InvalidBound(f"{label} has a NaN rhs.", ordinal=ordinal, name=row.name)
    if row.sense == "<=" and rhs == -math.inf or row.sense == ">=" and rhs == math.inf:
        raise InvalidBound(f"{label} can never be satisfied ({row.sense} {rhs}).", ordinal=ordinal, name=row.name)
    if row.sense in ("==", "range") and not math.isfinite(rhs):
        raise InvalidBound(f"{label} needs a finite rhs, got {rhs}.", ordinal=ordinal, name=row.name)
    if row.range_value is not None and not math.isfinite(row.range_value):
        raise InvalidBound(
            f"{label} needs a finite range_value, got {row.range_value}.", ordinal=ordinal, name=row.name
        )


def _label(kind: str, ordinal: int, name: Optional[str]) -> str:
    return f"{kind} {ordinal} ('{name}')" if name else f"{kind} {ordinal}"


def _index_names(entities: Sequence, kind: str, start: int = 0, taken: Optional[Dict[str, int]] = None) -> Dict[str, int]:
    index: Dict[str, int] = dict(taken or {})
    for offset, entity in enumerate(entities):
        name = entity.name
        if name is None:
            continue
        ordinal = start + offset
        if name in index:
            raise DuplicateName(
                f"{kind} name '{name}' used by {kind}s {index[name]} and {ordinal}.",
                ordinal=ordinal,
                name=name,
            )
        index[name] = ordinal
    return index


def _coerce_matrix(matrix: MatrixLike) -> SparseMatrix:
    if isinstance(matrix, SparseMatrix):
        return matrix.copy()
    if isinstance(matrix, MatrixData):
        return SparseMatrix.build(matrix.column_start, matrix.row_index, matrix.coefficient, matrix.num_rows)
    if sparse.issparse(matrix):
        return SparseMatrix.from_scipy(matrix)
    raise TypeError("matrix must be a SparseMatrix, MatrixData or scipy sparse matrix")


class ModelBuilder:
    """Bulk-load LP instances and name their rows and columns."""

    @staticmethod
    def load(
        rows: Sequence[Row],
        columns: Sequence[Column],
        matrix: MatrixLike,
        sense: Sense = "min",
        name: str = "problem",
        instance: Optional[LPInstance] = None,
    ) -> LPInstance:
        """
        Build a fully populated instance from row and column descriptions.

        The matrix must have exactly ``len(columns)`` columns and may only
        reference rows below ``len(rows)``; rows without entries are kept.
        When ``instance`` is given it is (re)filled in place and any previous
        solve state is discarded. Nothing is modified if a check fails.
        """
        if sense not in ("min", "max"):
            raise ValueError(f"Objective sense must be 'min' or 'max', got '{sense}'.")
        new_rows: List[Row] = [row.model_copy() for row in rows]
        new_columns: List[Column] = [col.model_copy() for col in columns]
        data = _coerce_matrix(matrix)

        if data.num_columns != len(new_columns):
            raise DimensionMismatch(
                f"Matrix has {data.num_columns} columns but {len(new_columns)} columns were described."
            )
        if data.num_rows > len(new_rows):
            raise DimensionMismatch(
                f"Matrix declares {data.num_rows} rows but only {len(new_rows)} rows were described.",
                ordinal=len(new_rows),
            )
        for ordinal, row in enumerate(new_rows):
            check_row(row, ordinal)
        for ordinal, column in enumerate(new_columns):
            check_bounds(column, ordinal)
        row_names = _index_names(new_rows, "row")
        column_names = _index_names(new_columns, "column")
        data.pad_rows(len(new_rows))

        target = instance if instance is not None else LPInstance(name)
        target.name = name
        target.sense = sense
        target.matrix = data
        target._rows = new_rows
        target._columns = new_columns
        target._row_names = row_names
        target._column_names = column_names
        target.loaded = True
        target.state = InstanceState.UNSOLVED
        target.last_status = None
        target.basis = None
        logger.info(
            "Loaded '%s': %d rows, %d columns, %d nonzeros (%s).",
            name,
            target.num_rows,
            target.num_columns,
            target.nnz,
            sense,
        )
        return target

    @staticmethod
    def assign_names(
        instance: LPInstance,
        kind: NameKind,
        names: Sequence[str],
        first: int,
        last: int,
    ) -> None:
        """
        Name rows or columns ``first..last`` (inclusive) in order.

        Entities inside the range give up their old names; a name may not
        collide with one held outside the range or repeat within ``names``.
        """
        instance.require_loaded("assign names")
        entities, index = instance._entities(kind)
        names = list(names)
        if first < 0 or last >= len(entities) or first > last:
            raise NameRangeError(
                f"{kind} range {first}..{last} is outside 0..{len(entities) - 1}.",
                ordinal=first if first < 0 or first > last else last,
            )
        if len(names) != last - first + 1:
            raise NameRangeError(
                f"{len(names)} names given for {kind}s {first}..{last} ({last - first + 1} expected).",
                ordinal=first,
            )
        for offset, name in enumerate(names):
            if not isinstance(name, str) or not name:
                raise ConstructionError(
                    f"{kind} {first + offset} needs a non-empty string name, got {name!r}.",
                    ordinal=first + offset,
                )

        kept = {name: ordinal for name, ordinal in index.items() if not first <= ordinal <= last}
        staged: Dict[str, int] = {}
        for offset, name in enumerate(names):
            ordinal = first + offset
            holder = kept.get(name, staged.get(name))
            if holder is not None:
                raise DuplicateName(
                    f"{kind} name '{name}' for {kind} {ordinal} is already used by {kind} {holder}.",
                    ordinal=ordinal,
                    name=name,
                )
            staged[name] = ordinal

        for name, ordinal in staged.items():
            entities[ordinal].name = name
        kept.update(staged)
        index.clear()
        index.update(kept)
