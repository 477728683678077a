from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from ..exceptions import InstanceStateError, SolverEngineError
from ..model.instance import BasisHandle, LPInstance
from ..schemas import SolveOptions, SolveResult
from .base import SolverEngine

logger = logging.getLogger(__name__)

# HiGHS simplex_strategy values
_PRIMAL = 4
_DUAL = 1


class HighsEngine(SolverEngine):
    """
    HiGHS through ``highspy`` (optional dependency, ``pip install lpdriver[highs]``).

    The basis lives inside the HiGHS object: a warm solve appends the new rows
    with ``addRows`` and reruns the dual simplex, so it needs the engine that
    produced the basis and falls back to a cold start otherwise.
    """

    name = "highs"

    def __init__(self) -> None:
        try:
            import highspy
        except ImportError as exc:
            raise ImportError("highspy is not installed; install lpdriver[highs].") from exc
        self._hs = highspy
        self._highs = None
        self._instance: Optional[LPInstance] = None
        self._owner: Optional[str] = None
        self._rows_synced = 0
        self._columns_synced = 0

    def register(self, instance: LPInstance) -> None:
        instance.require_loaded("register with the engine")
        self._instance = instance

    def objective_value(self) -> Optional[float]:
        if self._highs is None:
            return None
        return float(self._highs.getInfo().objective_function_value)

    def status(self) -> Optional[str]:
        if self._highs is None:
            return None
        return self._map_status(self._highs.getModelStatus())[0]

    def close(self) -> None:
        self._highs = None
        self._owner = None
        self._instance = None

    def solve_primal(self, options: SolveOptions) -> SolveResult:
        instance = self._registered()
        self._load(instance)
        return self._run(instance, _PRIMAL, "primal", options)

    def solve_dual(self, basis: BasisHandle, options: SolveOptions) -> SolveResult:
        instance = self._registered()
        if (
            self._highs is None
            or self._owner != instance.token
            or self._columns_synced != instance.num_columns
            or self._rows_synced > instance.num_rows
        ):
            logger.warning(
                "HiGHS holds no basis for '%s'. Falling back to cold start.", instance.name
            )
            return self.solve_primal(options)
        self._append_rows(instance, self._rows_synced)
        return self._run(instance, _DUAL, "dual", options)

    def _registered(self) -> LPInstance:
        if self._instance is None:
            raise InstanceStateError("No instance registered with the HiGHS engine.")
        return self._instance

    def _load(self, instance: LPInstance) -> None:
        hs = self._hs
        highs = hs.Highs()
        highs.setOptionValue("output_flag", False)
        m, n = instance.num_rows, instance.num_columns

        # empty rows first, then the columns with their column-compressed entries
        row_lower, row_upper = instance.row_bounds()
        self._check(highs.addRows(m, row_lower, row_upper, 0, np.zeros(m, dtype=np.int32),
                                  np.zeros(0, dtype=np.int32), np.zeros(0)), "addRows")
        csc = instance.matrix.to_scipy()
        csc.sort_indices()
        lower, upper = instance.column_bounds()
        self._check(
            highs.addCols(
                n,
                instance.objective(),
                lower,
                upper,
                int(csc.nnz),
                csc.indptr[:-1].astype(np.int32),
                csc.indices.astype(np.int32),
                csc.data.astype(np.float64),
            ),
            "addCols",
        )
        sense = hs.ObjSense.kMaximize if instance.sense == "max" else hs.ObjSense.kMinimize
        self._check(highs.changeObjectiveSense(sense), "changeObjectiveSense")

        self._highs = highs
        self._owner = instance.token
        self._rows_synced = m
        self._columns_synced = n

    def _append_rows(self, instance: LPInstance, first: int) -> None:
        count = instance.num_rows - first
        if count <= 0:
            return
        starts, indices, values = [], [], []
        for i in range(first, instance.num_rows):
            cols, vals = instance.matrix.row(i)
            starts.append(len(indices))
            indices.extend(cols.tolist())
            values.extend(vals.tolist())
        row_lower, row_upper = instance.row_bounds()
        self._check(
            self._highs.addRows(
                count,
                row_lower[first:],
                row_upper[first:],
                len(indices),
                np.array(starts, dtype=np.int32),
                np.array(indices, dtype=np.int32),
                np.array(values, dtype=np.float64),
            ),
            "addRows",
        )
        self._rows_synced = instance.num_rows

    def _run(self, instance: LPInstance, strategy: int, method: str, options: SolveOptions) -> SolveResult:
        highs = self._highs
        highs.setOptionValue("solver", "simplex")
        highs.setOptionValue("simplex_strategy", strategy)
        highs.setOptionValue("simplex_iteration_limit", int(options.max_iters))
        if options.time_limit is not None:
            highs.setOptionValue("time_limit", float(options.time_limit))
        self._check(highs.run(), "run")

        status, message = self._map_status(highs.getModelStatus())
        if status is None:
            raise SolverEngineError("HiGHS finished without a model status.")
        info = highs.getInfo()
        iterations = int(info.simplex_iteration_count)
        logger.info("HiGHS %s simplex on '%s': %s after %d iterations.", method, instance.name, status, iterations)
        if status != "optimal":
            return SolveResult(status=status, objective_value=None, iterations=iterations, method=method, message=message)

        solution = highs.getSolution()
        handle = BasisHandle(
            owner=instance.token,
            num_rows=instance.num_rows,
            num_columns=instance.num_columns,
            engine=self.name,
        )
        return SolveResult(
            status="optimal",
            objective_value=float(info.objective_function_value),
            x=[float(v) for v in solution.col_value],
            duals=[float(v) for v in solution.row_dual] if options.return_duals else None,
            iterations=iterations,
            method=method,
            basis=handle,
        )

    def _map_status(self, model_status):
        ms = self._hs.HighsModelStatus
        if model_status in (ms.kOptimal, ms.kModelEmpty):
            return "optimal", ""
        if model_status == ms.kInfeasible:
            return "infeasible", "Infeasible."
        if model_status == ms.kUnbounded:
            return "unbounded", "Unbounded."
        if model_status == ms.kUnboundedOrInfeasible:
            return "infeasible", "Unbounded or infeasible."
        if model_status in (ms.kTimeLimit, ms.kIterationLimit, ms.kInterrupt):
            return "unfinished", self._highs.modelStatusToString(model_status)
        if model_status == ms.kNotset:
            return None, ""
        raise SolverEngineError(f"HiGHS reported {self._highs.modelStatusToString(model_status)}.")

    def _check(self, status, call: str) -> None:
        if status == self._hs.HighsStatus.kError:
            raise SolverEngineError(f"HiGHS {call} failed.")
