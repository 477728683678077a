from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from .engine import SolverEngine, create_engine
from .exceptions import InstanceStateError, WarmStartIneligible
from .model.instance import BasisHandle, InstanceState, LPInstance
from .schemas import SolveOptions, SolveResult

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class SolveOrchestrator:
    """
    Chooses between a cold primal solve and a warm dual re-solve.

    A warm solve is only allowed when the instance was solved to optimality
    and has only had rows appended since; any other change clears the
    instance's basis handle and a cold solve is required. Infeasible,
    unbounded and unfinished outcomes come back as statuses; engine failures
    raise :class:`SolverEngineError` and leave the instance state unchanged.
    """

    def __init__(self, engine: Optional[SolverEngine] = None, options: Optional[SolveOptions] = None) -> None:
        self.options = options or SolveOptions()
        self._engine = engine if engine is not None else create_engine(self.options.engine)
        self._closed = False

    @property
    def engine(self) -> SolverEngine:
        if self._closed:
            raise InstanceStateError("Solve session has been closed.")
        return self._engine

    def solve_cold(self, instance: LPInstance, options: Optional[SolveOptions] = None) -> SolveResult:
        instance.require_loaded("solve")
        engine = self.engine
        engine.register(instance)
        result = engine.solve_primal(options or self.options)
        instance._record_solve(result)
        return result

    def solve_warm(
        self,
        instance: LPInstance,
        basis: Optional[BasisHandle] = None,
        options: Optional[SolveOptions] = None,
    ) -> SolveResult:
        instance.require_loaded("solve")
        handle = basis if basis is not None else instance.basis
        self._check_warm(instance, handle)
        engine = self.engine
        engine.register(instance)
        result = engine.solve_dual(handle, options or self.options)
        instance._record_solve(result)
        return result

    def solve(self, instance: LPInstance, options: Optional[SolveOptions] = None) -> SolveResult:
        "Warm dual re-solve when the instance allows it, cold primal solve otherwise."
        if instance.warm_start_eligible:
            return self.solve_warm(instance, options=options)
        return self.solve_cold(instance, options=options)

    def _check_warm(self, instance: LPInstance, handle: Optional[BasisHandle]) -> None:
        if instance.state == InstanceState.UNSOLVED:
            raise WarmStartIneligible(f"Instance '{instance.name}' has not been solved yet.")
        if handle is None or instance.basis is None:
            raise WarmStartIneligible(
                f"Instance '{instance.name}' has no usable basis: the last solve was not optimal "
                "or the instance changed in ways other than row additions."
            )
        if handle.owner != instance.token:
            raise WarmStartIneligible(f"Basis does not belong to instance '{instance.name}'.")
        if handle is not instance.basis:
            raise WarmStartIneligible(f"Basis is not the current basis of instance '{instance.name}'.")
        if handle.num_columns != instance.num_columns or handle.num_rows > instance.num_rows:
            raise WarmStartIneligible(
                f"Basis was taken on {handle.num_rows}x{handle.num_columns}, "
                f"instance is now {instance.num_rows}x{instance.num_columns}."
            )
        if handle.engine != self.engine.name:
            raise WarmStartIneligible(
                f"Basis comes from engine '{handle.engine}', session uses '{self.engine.name}'."
            )

    def close(self) -> None:
        if not self._closed:
            self._engine.close()
            self._closed = True

    def __enter__(self) -> "SolveOrchestrator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False


@contextmanager
def open_session(
    options: Optional[SolveOptions] = None,
    engine: Optional[SolverEngine] = None,
) -> Iterator[SolveOrchestrator]:
    """
    Open an engine (and the optional solver log file) for a block of solves.

    Both are released on every exit path, including solve failures.
    """
    opts = options or SolveOptions()
    package_logger = logging.getLogger("lpdriver")
    handler: Optional[logging.Handler] = None
    previous_level = package_logger.level
    if opts.log_file is not None:
        handler = logging.FileHandler(opts.log_file, mode="w", encoding="utf-8")
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        package_logger.addHandler(handler)
        if package_logger.getEffectiveLevel() > logging.INFO:
            package_logger.setLevel(logging.INFO)

    orchestrator: Optional[SolveOrchestrator] = None
    try:
        orchestrator = SolveOrchestrator(engine=engine, options=opts)
        yield orchestrator
    finally:
        if orchestrator is not None:
            orchestrator.close()
        elif engine is not None:
            engine.close()
        if handler is not None:
            package_logger.removeHandler(handler)
            handler.close()
            package_logger.setLevel(previous_level)
