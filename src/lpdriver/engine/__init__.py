"""Solver engines behind the orchestrator."""

from .base import SolverEngine
from .simplex import SimplexEngine
from .standard_form import build_standard_form


def create_engine(name: str = "simplex") -> SolverEngine:
    if name == "simplex":
        return SimplexEngine()
    if name == "highs":
        from .highs import HighsEngine

        return HighsEngine()
    raise ValueError(f"Unknown engine '{name}', expected 'simplex' or 'highs'.")


__all__ = ["SolverEngine", "SimplexEngine", "build_standard_form", "create_engine"]
