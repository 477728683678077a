from __future__ import annotations

from typing import Optional


class LPDriverError(Exception):
    """Base class for every error raised by lpdriver."""


class ConstructionError(LPDriverError, ValueError):
    """
    Raised while building or mutating an instance.

    The instance is left exactly as it was before the failing call.
    ``ordinal`` and ``name`` identify the offending row or column when known.
    """

    def __init__(self, message: str, *, ordinal: Optional[int] = None, name: Optional[str] = None) -> None:
        super().__init__(message)
        self.ordinal = ordinal
        self.name = name


class MalformedMatrix(ConstructionError):
    "Column starts, row indices or coefficients violate the sparse layout."


class DimensionMismatch(ConstructionError):
    "Row/column counts disagree between the matrix and its descriptions."


class InvalidBound(ConstructionError):
    "A column bound pair or a row limit is contradictory or not a number."


class DuplicateName(ConstructionError):
    "A row or column name is already taken."


class NameRangeError(ConstructionError, IndexError):
    "The ordinal range given for naming is out of bounds or the wrong size."


class InstanceStateError(LPDriverError, RuntimeError):
    "The instance is not in a state that allows the requested operation."


class WarmStartIneligible(LPDriverError):
    "No usable basis for a warm start; solve cold instead."


class SolverEngineError(LPDriverError, RuntimeError):
    "The engine failed while solving; the instance itself is untouched."
