from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Set, Tuple

import numpy as np

from ..exceptions import InstanceStateError, SolverEngineError
from ..model.instance import BasisHandle, LPInstance
from ..schemas import SolveOptions, SolveResult
from .base import SolverEngine
from .standard_form import build_standard_form

logger = logging.getLogger(__name__)

_LIMIT_MESSAGES = {
    "iteration_limit": "Hit iteration limit.",
    "time_limit": "Hit time limit.",
}


class SimplexEngine(SolverEngine):
    """
    Dense revised simplex on numpy.

    Cold solves run Phase I/II primal simplex with a Bland fallback option.
    Warm solves map the previous basis onto the extended problem, make the
    logicals of appended rows basic and run the dual simplex, which keeps
    dual feasibility and restores primal feasibility. Engineered for clarity,
    not speed.
    """

    name = "simplex"

    def __init__(self) -> None:
        self._instance: Optional[LPInstance] = None
        self._status: Optional[str] = None
        self._objective: Optional[float] = None

    def register(self, instance: LPInstance) -> None:
        instance.require_loaded("register with the engine")
        self._instance = instance
        self._status = None
        self._objective = None

    def objective_value(self) -> Optional[float]:
        return self._objective

    def status(self) -> Optional[str]:
        return self._status

    def close(self) -> None:
        self._instance = None

    def solve_primal(self, options: SolveOptions) -> SolveResult:
        instance = self._registered()
        deadline = _deadline(options)
        try:
            A, b, c, meta, basis = build_standard_form(instance)
            outcome = _solve_two_phase(A, b, c, basis, meta, options, deadline)
        except (np.linalg.LinAlgError, FloatingPointError, MemoryError) as exc:
            raise SolverEngineError(f"Primal simplex failed on '{instance.name}': {exc}") from exc
        return self._finish(instance, outcome, meta, "primal", options)

    def solve_dual(self, basis: BasisHandle, options: SolveOptions) -> SolveResult:
        instance = self._registered()
        payload = basis.payload or {}
        deadline = _deadline(options)
        try:
            A, b, c, meta, _ = build_standard_form(instance, payload.get("artificial_signs", {}))
            start = _extend_basis(meta, payload)
            if start is None or len(start) != A.shape[0]:
                return self._fallback(options, "basis does not match the current rows")

            forbidden = set(meta["artificial_indices"])
            outcome = _run_dual_simplex(A, b, c, start, meta, options, forbidden, deadline)
            if outcome["status"] == "not_dual_feasible":
                return self._fallback(options, "basis is not dual feasible")
            if outcome["status"] == "optimal":
                remaining = max(options.max_iters - outcome["iterations"], 1)
                polish = _run_simplex(
                    A, b, c, outcome["basis"], options, options.pivot_rule == "bland",
                    max_iterations=remaining, forbidden=forbidden, deadline=deadline,
                )
                polish["iterations"] += outcome["iterations"]
                outcome = polish
        except (np.linalg.LinAlgError, FloatingPointError, MemoryError) as exc:
            raise SolverEngineError(f"Dual simplex failed on '{instance.name}': {exc}") from exc
        return self._finish(instance, outcome, meta, "dual", options)

    def _registered(self) -> LPInstance:
        if self._instance is None:
            raise InstanceStateError("No instance registered with the simplex engine.")
        return self._instance

    def _fallback(self, options: SolveOptions, reason: str) -> SolveResult:
        logger.warning(
            "Warm start of '%s' not possible (%s). Falling back to cold start.",
            self._registered().name,
            reason,
        )
        result = self.solve_primal(options)
        result.message = f"Warm start rejected ({reason}); solved cold. {result.message}".strip()
        return result

    def _finish(
        self,
        instance: LPInstance,
        outcome: Dict[str, Any],
        meta: Dict[str, Any],
        method: str,
        options: SolveOptions,
    ) -> SolveResult:
        status = outcome["status"]
        iterations = outcome.get("iterations", 0)
        self._status = status if status not in _LIMIT_MESSAGES else "unfinished"
        self._objective = None

        if status != "optimal":
            message = outcome.get("message") or _LIMIT_MESSAGES.get(status, status.capitalize() + ".")
            logger.info("%s simplex on '%s': %s after %d iterations.", method, instance.name, self._status, iterations)
            return SolveResult(
                status=self._status,
                objective_value=None,
                iterations=iterations,
                method=method,
                message=message,
            )

        x_std = outcome["x"]
        objective = outcome["objective"]
        if instance.sense == "max":
            objective_value = meta["objective_constant"] + objective
        else:
            objective_value = meta["objective_constant"] - objective
        self._objective = float(objective_value)

        handle = BasisHandle(
            owner=instance.token,
            num_rows=instance.num_rows,
            num_columns=instance.num_columns,
            engine=self.name,
            payload={
                "basis": tuple(meta["labels"][idx] for idx in outcome["basis"]),
                "row_labels": frozenset(meta["row_labels"]),
                "artificial_signs": dict(meta["artificial_signs"]),
            },
        )
        logger.info(
            "%s simplex on '%s': optimal objective %.10g in %d iterations.",
            method,
            instance.name,
            self._objective,
            iterations,
        )
        return SolveResult(
            status="optimal",
            objective_value=self._objective,
            x=_reconstruct_original_solution(meta, x_std),
            duals=_map_duals(meta, outcome["duals"], options),
            iterations=iterations,
            method=method,
            basis=handle,
        )


def _deadline(options: SolveOptions) -> Optional[float]:
    if options.time_limit is None:
        return None
    return time.perf_counter() + options.time_limit


def _expired(deadline: Optional[float]) -> bool:
    return deadline is not None and time.perf_counter() >= deadline


def _extend_basis(meta: Dict[str, Any], payload: Dict[str, Any]) -> Optional[List[int]]:
    "Old basic labels plus the natural logical of every row added since."
    index = meta["index"]
    try:
        basis = [index[label] for label in payload.get("basis", ())]
    except KeyError:
        return None
    known = payload.get("row_labels", frozenset())
    for row_label in meta["row_labels"]:
        if row_label not in known:
            basis.append(meta["row_natural"][row_label])
    return basis


def _solve_two_phase(
    A: np.ndarray,
    b: np.ndarray,
    c: np.ndarray,
    basis: List[int],
    meta: Dict[str, Any],
    opts: SolveOptions,
    deadline: Optional[float],
) -> Dict[str, Any]:
    use_bland = opts.pivot_rule == "bland"
    phase1 = _phase_I(A, b, c, basis, meta, use_bland, opts, deadline)
    iterations = phase1.get("iterations", 0)
    if phase1["status"] == "unbounded":
        return {
            "status": "unbounded",
            "iterations": iterations,
            "message": "Phase I detected unbounded auxiliary problem (likely modelling error).",
        }
    if phase1["status"] != "feasible":
        phase1["iterations"] = iterations
        return phase1

    remaining = max(opts.max_iters - iterations, 1)
    phase2 = _run_simplex(
        A, b, c, phase1["basis"], opts, use_bland,
        max_iterations=remaining, forbidden=set(meta["artificial_indices"]), deadline=deadline,
    )
    phase2["iterations"] += iterations
    return phase2


def _phase_I(
    A: np.ndarray,
    b: np.ndarray,
    c: np.ndarray,
    basis: List[int],
    meta: Dict[str, Any],
    use_bland: bool,
    opts: SolveOptions,
    deadline: Optional[float],
) -> Dict[str, Any]:
    artificial = set(meta["artificial_indices"])
    if not artificial or A.shape[0] == 0:
        return {
            "status": "feasible",
            "basis": basis.copy(),
            "x": _basic_solution(A, b, basis, opts.tol),
            "iterations": 0,
        }

    c_phase1 = np.zeros_like(c)
    for idx in artificial:
        c_phase1[idx] = -1.0  # maximise => drives artificials to zero

    result = _run_simplex(
        A, b, c_phase1, basis.copy(), opts, use_bland,
        max_iterations=opts.max_iters, forbidden=None, deadline=deadline,
    )
    if result["status"] != "optimal":
        return result

    x = result["x"]
    sum_artificial = float(sum(x[idx] for idx in artificial))
    status = "infeasible" if sum_artificial > opts.tol else "feasible"
    return {
        "status": status,
        "basis": result["basis"],
        "x": x,
        "iterations": result["iterations"],
        "message": "Infeasible." if status == "infeasible" else "",
    }


def _run_simplex(
    A: np.ndarray,
    b: np.ndarray,
    c: np.ndarray,
    basis: List[int],
    opts: SolveOptions,
    use_bland: bool,
    max_iterations: Optional[int],
    forbidden: Optional[Set[int]],
    deadline: Optional[float] = None,
) -> Dict[str, Any]:
    basis = basis.copy()
    forbidden = set() if forbidden is None else set(forbidden)
    tol = opts.tol
    m, n = A.shape
    iterations = 0
    max_iter = max_iterations if max_iterations is not None else opts.max_iters
    max_iter = max(max_iter, 1)

    if m == 0:
        positive_indices = [j for j in range(n) if j not in forbidden and c[j] > tol]
        if positive_indices:
            return {"status": "unbounded", "basis": basis.copy(), "iterations": iterations}
        return {
            "status": "optimal",
            "basis": basis.copy(),
            "iterations": iterations,
            "x": np.zeros(n),
            "objective": 0.0,
            "duals": np.zeros(0),
            "reduced_costs": np.where(np.abs(c) < tol, 0.0, c),
        }

    while True:
        B = A[:, basis]
        xB = _solve(B, b)
        xB[np.abs(xB) < tol] = 0.0
        if np.any(xB < -tol):
            xB = np.maximum(xB, 0.0)

        y = _solve(B.T, c[basis])
        reduced = c - A.T @ y
        reduced[np.abs(reduced) < tol] = 0.0
        reduced[basis] = 0.0

        in_basis = set(basis)
        entering_candidates = [
            (j, reduced[j]) for j in range(n) if j not in in_basis and j not in forbidden and reduced[j] > tol
        ]

        if not entering_candidates:
            x = np.zeros(n)
            x[basis] = xB
            return {
                "status": "optimal",
                "basis": basis.copy(),
                "iterations": iterations,
                "x": x,
                "objective": float(c[basis] @ xB),
                "duals": y,
                "reduced_costs": reduced,
            }

        if iterations >= max_iter:
            return {"status": "iteration_limit", "basis": basis.copy(), "iterations": iterations}
        if _expired(deadline):
            return {"status": "time_limit", "basis": basis.copy(), "iterations": iterations}

        if use_bland:
            entering = min(j for j, _ in entering_candidates)
        else:
            entering = max(entering_candidates, key=lambda item: item[1])[0]

        d = _solve(B, A[:, entering])
        d[np.abs(d) < tol] = 0.0

        ratios: List[Tuple[float, int]] = []
        for idx, value in enumerate(d):
            if value > tol:
                ratios.append((xB[idx] / value, idx))
            elif value < -tol and basis[idx] in forbidden:
                # a basic artificial sits at zero; pivot it out before it can grow
                ratios.append((0.0, idx))
        if not ratios:
            return {"status": "unbounded", "basis": basis.copy(), "iterations": iterations}

        if use_bland:
            theta, pivot_row = min(ratios, key=lambda item: (item[0], basis[item[1]]))
        else:
            theta, pivot_row = min(ratios, key=lambda item: item[0])

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "primal pivot %d: column %d enters, column %d leaves (step %.6g)",
                iterations, entering, basis[pivot_row], theta,
            )
        basis[pivot_row] = entering
        iterations += 1


def _run_dual_simplex(
    A: np.ndarray,
    b: np.ndarray,
    c: np.ndarray,
    basis: List[int],
    meta: Dict[str, Any],
    opts: SolveOptions,
    forbidden: Set[int],
    deadline: Optional[float],
) -> Dict[str, Any]:
    """
    Dual simplex from a dual feasible basis.

    Leaves the most negative basic variable (lowest column under Bland) and
    enters the nonbasic column with the smallest ratio of reduced cost to
    pivot-row entry, so every reduced cost stays non-positive. Artificials
    may leave but never enter; one that is basic at a positive level has its
    column negated so it can leave as a negative basic variable.
    """

    basis = basis.copy()
    tol = opts.tol
    use_bland = opts.pivot_rule == "bland"
    m, n = A.shape
    iterations = 0
    checked_dual = False

    while True:
        B = A[:, basis]
        xB = _solve(B, b)
        flipped = False
        for pos, idx in enumerate(basis):
            if idx in forbidden and xB[pos] > tol:
                A[:, idx] = -A[:, idx]
                label = meta["labels"][idx]
                meta["artificial_signs"][label] = -meta["artificial_signs"].get(label, 1.0)
                flipped = True
        if flipped:
            B = A[:, basis]
            xB = _solve(B, b)

        y = _solve(B.T, c[basis])
        reduced = c - A.T @ y
        reduced[np.abs(reduced) < tol] = 0.0
        reduced[basis] = 0.0
        in_basis = set(basis)

        if not checked_dual:
            if any(reduced[j] > tol for j in range(n) if j not in in_basis and j not in forbidden):
                return {"status": "not_dual_feasible", "basis": basis, "iterations": 0}
            checked_dual = True

        negative = [pos for pos in range(m) if xB[pos] < -tol]
        if not negative:
            return {"status": "optimal", "basis": basis, "iterations": iterations}
        if iterations >= opts.max_iters:
            return {"status": "iteration_limit", "basis": basis, "iterations": iterations}
        if _expired(deadline):
            return {"status": "time_limit", "basis": basis, "iterations": iterations}

        if use_bland:
            leave_pos = min(negative, key=lambda pos: basis[pos])
        else:
            leave_pos = min(negative, key=lambda pos: xB[pos])

        unit = np.zeros(m)
        unit[leave_pos] = 1.0
        rho = _solve(B.T, unit)
        alpha = rho @ A
        alpha[np.abs(alpha) < tol] = 0.0

        candidates = [
            (reduced[j] / alpha[j], j)
            for j in range(n)
            if j not in in_basis and j not in forbidden and alpha[j] < -tol
        ]
        if not candidates:
            return {
                "status": "infeasible",
                "basis": basis,
                "iterations": iterations,
                "message": "Infeasible (dual unbounded).",
            }
        if use_bland:
            ratio, entering = min(candidates, key=lambda item: (item[0], item[1]))
        else:
            ratio, entering = min(candidates, key=lambda item: (item[0], -abs(alpha[item[1]])))

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "dual pivot %d: column %d leaves at %.6g, column %d enters (ratio %.6g)",
                iterations, basis[leave_pos], xB[leave_pos], entering, ratio,
            )
        basis[leave_pos] = entering
        iterations += 1


def _solve(B: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    try:
        return np.linalg.solve(B, rhs)
    except np.linalg.LinAlgError:
        return np.linalg.lstsq(B, rhs, rcond=None)[0]


def _basic_solution(A: np.ndarray, b: np.ndarray, basis: List[int], tol: float) -> np.ndarray:
    n = A.shape[1] if A.ndim == 2 else len(basis)
    x = np.zeros(n)
    if A.shape[0] == 0 or len(basis) == 0:
        return x
    xB = _solve(A[:, basis], b)
    xB[np.abs(xB) < tol] = 0.0
    x[basis] = xB
    return x


def _reconstruct_original_solution(meta: Dict[str, Any], x_std: np.ndarray) -> List[float]:
    result: List[float] = []
    for j, comps in enumerate(meta["components"]):
        value = meta["offsets"][j]
        for idx, coef in comps:
            value += coef * x_std[idx]
        if abs(value) < 1e-12:
            value = 0.0
        result.append(float(value))
    return result


def _map_duals(meta: Dict[str, Any], duals: np.ndarray, opts: SolveOptions) -> Optional[List[float]]:
    if not opts.return_duals or duals is None or duals.size == 0:
        return None
    result: List[float] = []
    for slots in meta["row_slots"]:
        value = float(sum(duals[k] for k in slots))
        if abs(value) < 1e-12:
            value = 0.0
        result.append(value)
    return result
