from __future__ import annotations

import threading
from typing import Dict, List, Literal, Tuple

from mcp.server.fastmcp import FastMCP

from .model import LPInstance, ModelBuilder, ModelMutator
from .orchestrator import SolveOrchestrator
from .schemas import Column, MatrixData, NameKind, Row, Sense, SolveOptions

mcp = FastMCP("LP Driver")


class ModelRegistry:
    """Named instances, each serialised behind its own lock."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._models: Dict[str, Tuple[LPInstance, threading.Lock]] = {}

    def put(self, name: str, instance: LPInstance) -> None:
        with self._guard:
            self._models[name] = (instance, threading.Lock())

    def get(self, name: str) -> Tuple[LPInstance, threading.Lock]:
        with self._guard:
            if name not in self._models:
                raise KeyError(f"No model named '{name}'.")
            return self._models[name]

    def drop(self, name: str) -> bool:
        with self._guard:
            return self._models.pop(name, None) is not None

    def names(self) -> List[str]:
        with self._guard:
            return sorted(self._models)


registry = ModelRegistry()


@mcp.tool()
def load_model(
    name: str,
    rows: List[Row],
    columns: List[Column],
    matrix: MatrixData,
    sense: Sense = "min",
) -> dict:
    "Load an LP from rows, columns and a column-compressed matrix, replacing any model of that name."
    instance = ModelBuilder.load(rows, columns, matrix, sense=sense, name=name)
    registry.put(name, instance)
    return instance.summary()


@mcp.tool()
def assign_names(model: str, kind: NameKind, names: List[str], first: int, last: int) -> dict:
    "Name rows or columns first..last (inclusive) of a loaded model."
    instance, lock = registry.get(model)
    with lock:
        ModelBuilder.assign_names(instance, kind, names, first, last)
        return instance.summary()


@mcp.tool()
def add_rows(model: str, rows: List[Row], coefficients: List[List[Tuple[int, float]]]) -> dict:
    "Append constraints given as (column, value) pairs; keeps warm-start eligibility."
    instance, lock = registry.get(model)
    with lock:
        ordinals = ModelMutator.add_rows(instance, rows, coefficients)
        return {"ordinals": ordinals, **instance.summary()}


@mcp.tool()
def solve_model(
    model: str,
    method: Literal["auto", "primal", "dual"] = "auto",
    options: SolveOptions | None = None,
) -> dict:
    "Solve cold (primal), warm (dual) or whichever the model allows (auto)."
    opts = options or SolveOptions()
    instance, lock = registry.get(model)
    with lock, SolveOrchestrator(options=opts) as session:
        if method == "primal":
            result = session.solve_cold(instance)
        elif method == "dual":
            result = session.solve_warm(instance)
        else:
            result = session.solve(instance)
        return result.model_dump()


@mcp.tool()
def describe_model(model: str) -> dict:
    "Row/column counts, state and warm-start eligibility of a model."
    instance, lock = registry.get(model)
    with lock:
        return instance.summary()


@mcp.tool()
def drop_model(model: str) -> dict:
    "Forget a model."
    return {"dropped": registry.drop(model), "models": registry.names()}


if __name__ == "__main__":
    mcp.run()
