from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..model.instance import BasisHandle, LPInstance
from ..schemas import SolveOptions, SolveResult


class SolverEngine(ABC):
    """
    What the orchestrator needs from a simplex implementation.

    An engine holds at most one registered instance. ``solve_primal`` starts
    from scratch; ``solve_dual`` restarts from a basis produced by an earlier
    solve of the same instance, valid after rows were appended.
    """

    name = "engine"

    @abstractmethod
    def register(self, instance: LPInstance) -> None:
        ...

    @abstractmethod
    def solve_primal(self, options: SolveOptions) -> SolveResult:
        ...

    @abstractmethod
    def solve_dual(self, basis: BasisHandle, options: SolveOptions) -> SolveResult:
        ...

    @abstractmethod
    def objective_value(self) -> Optional[float]:
        ...

    @abstractmethod
    def status(self) -> Optional[str]:
        ...

    def close(self) -> None:
        "Release engine resources. Safe to call more than once."

    def __enter__(self) -> "SolverEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
