"""Sparse LP loading, naming and incremental re-solves with warm-started dual simplex."""

import logging

from . import exceptions, schemas
from .engine import SolverEngine, create_engine
from .matrix import SparseMatrix
from .model import BasisHandle, InstanceState, LPInstance, ModelBuilder, ModelMutator
from .orchestrator import SolveOrchestrator, open_session
from .schemas import Column, MatrixData, Row, SolveOptions, SolveResult

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "BasisHandle",
    "Column",
    "InstanceState",
    "LPInstance",
    "MatrixData",
    "ModelBuilder",
    "ModelMutator",
    "Row",
    "SolveOptions",
    "SolveOrchestrator",
    "SolveResult",
    "SolverEngine",
    "SparseMatrix",
    "create_engine",
    "exceptions",
    "open_session",
    "schemas",
]
