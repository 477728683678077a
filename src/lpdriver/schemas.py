from __future__ import annotations

import math
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

Sense = Literal["min", "max"]
RowSense = Literal["<=", ">=", "==", "range"]
NameKind = Literal["row", "column"]
SolveStatus = Literal["optimal", "infeasible", "unbounded", "unfinished"]
SolveMethod = Literal["primal", "dual"]


class Row(BaseModel):
    sense: RowSense
    rhs: float
    range_value: Optional[float] = None
    name: Optional[str] = None

    @model_validator(mode="after")
    def _check_range(self) -> "Row":
        if self.sense == "range":
            if self.range_value is None:
                raise ValueError("Range rows need a range_value.")
            if math.isnan(self.range_value) or self.range_value < 0:
                raise ValueError(f"range_value must be non-negative, got {self.range_value}.")
        elif self.range_value is not None:
            raise ValueError(f"range_value is only allowed on range rows, not '{self.sense}'.")
        return self

    @property
    def lower(self) -> float:
        "Lower activity limit implied by the sense."
        if self.sense == ">=" or self.sense == "==":
            return self.rhs
        if self.sense == "range":
            return self.rhs - float(self.range_value)
        return -math.inf

    @property
    def upper(self) -> float:
        "Upper activity limit implied by the sense."
        if self.sense == ">=":
            return math.inf
        return self.rhs


class Column(BaseModel):
    objective: float = 0.0
    lb: float = 0.0
    ub: float = math.inf
    name: Optional[str] = None


class MatrixData(BaseModel):
    """Column-compressed matrix payload (plain lists), as accepted over the wire."""

    column_start: List[int]
    row_index: List[int] = Field(default_factory=list)
    coefficient: List[float] = Field(default_factory=list)
    num_rows: Optional[int] = None


class SolveOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_iters: int = 10_000
    tol: float = 1e-9
    pivot_rule: Literal["dantzig", "bland"] = "dantzig"
    return_duals: bool = True
    time_limit: Optional[float] = None
    engine: Literal["simplex", "highs"] = "simplex"
    log_file: Optional[Path] = None


class SolveResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: SolveStatus
    objective_value: Optional[float]
    x: List[float] | None = None
    duals: List[float] | None = None
    iterations: int = 0
    method: SolveMethod = "primal"
    message: str = ""
    basis: Optional[object] = Field(default=None, exclude=True)

    def is_optimal(self) -> bool:
        return self.status == "optimal"

    def is_feasible(self) -> bool:
        "Optimal, or stopped at a limit with a primal feasible point."
        return self.status == "optimal" or (self.status == "unfinished" and self.x is not None)
