from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..exceptions import InstanceStateError
from ..matrix import SparseMatrix
from ..schemas import Column, NameKind, Row, Sense, SolveResult

logger = logging.getLogger(__name__)


class InstanceState(str, Enum):
    UNSOLVED = "unsolved"
    SOLVED = "solved"
    MODIFIED = "modified"


@dataclass(frozen=True)
class BasisHandle:
    """
    Opaque reference to the engine basis of a solved instance.

    Only meaningful for the instance whose ``token`` matches ``owner``.
    ``payload`` belongs to the engine named in ``engine``.
    """

    owner: str
    num_rows: int
    num_columns: int
    engine: str
    payload: Any = field(default=None, compare=False, repr=False)


class LPInstance:
    """
    An LP owned by the caller: rows, columns, constraint matrix and sense.

    A fresh ``LPInstance()`` is only declared; :meth:`ModelBuilder.load`
    populates it. Mutations go through :class:`ModelMutator`, which keeps the
    warm-start handle valid for row additions and clears it otherwise.
    """

    def __init__(self, name: str = "problem") -> None:
        self.name = name
        self.sense: Sense = "min"
        self.matrix = SparseMatrix()
        self.loaded = False
        self.state = InstanceState.UNSOLVED
        self.last_status: Optional[str] = None
        self.basis: Optional[BasisHandle] = None
        self.token = uuid.uuid4().hex
        self._rows: List[Row] = []
        self._columns: List[Column] = []
        self._row_names: Dict[str, int] = {}
        self._column_names: Dict[str, int] = {}

    @property
    def rows(self) -> Tuple[Row, ...]:
        return tuple(self._rows)

    @property
    def columns(self) -> Tuple[Column, ...]:
        return tuple(self._columns)

    @property
    def num_rows(self) -> int:
        return len(self._rows)

    @property
    def num_columns(self) -> int:
        return len(self._columns)

    @property
    def nnz(self) -> int:
        return self.matrix.nnz

    @property
    def warm_start_eligible(self) -> bool:
        return self.state != InstanceState.UNSOLVED and self.basis is not None

    def row_ordinal(self, name: str) -> int:
        return self._row_names[name]

    def column_ordinal(self, name: str) -> int:
        return self._column_names[name]

    def row_name(self, ordinal: int) -> Optional[str]:
        return self._rows[ordinal].name

    def column_name(self, ordinal: int) -> Optional[str]:
        return self._columns[ordinal].name

    def objective(self) -> np.ndarray:
        return np.array([col.objective for col in self._columns], dtype=np.float64)

    def column_bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        lower = np.array([col.lb for col in self._columns], dtype=np.float64)
        upper = np.array([col.ub for col in self._columns], dtype=np.float64)
        return lower, upper

    def row_bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        lower = np.array([row.lower for row in self._rows], dtype=np.float64)
        upper = np.array([row.upper for row in self._rows], dtype=np.float64)
        return lower, upper

    def summary(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "sense": self.sense,
            "rows": self.num_rows,
            "columns": self.num_columns,
            "nonzeros": self.nnz,
            "state": self.state.value,
            "last_status": self.last_status,
            "warm_start_eligible": self.warm_start_eligible,
        }

    def require_loaded(self, operation: str) -> None:
        if not self.loaded:
            raise InstanceStateError(f"Cannot {operation}: instance '{self.name}' has not been loaded.")

    def _entities(self, kind: NameKind) -> Tuple[list, Dict[str, int]]:
        if kind == "row":
            return self._rows, self._row_names
        if kind == "column":
            return self._columns, self._column_names
        raise ValueError(f"Unknown name kind '{kind}', expected 'row' or 'column'.")

    def _mark_rows_appended(self) -> None:
        if self.state == InstanceState.SOLVED:
            self.state = InstanceState.MODIFIED

    def _invalidate_basis(self, reason: str) -> None:
        if self.basis is not None:
            logger.debug("Instance '%s': warm start disabled (%s).", self.name, reason)
        self.basis = None
        if self.state == InstanceState.SOLVED:
            self.state = InstanceState.MODIFIED

    def _record_solve(self, result: SolveResult) -> None:
        self.state = InstanceState.SOLVED
        self.last_status = result.status
        self.basis = result.basis if isinstance(result.basis, BasisHandle) else None

    def __repr__(self) -> str:
        return (
            f"<LPInstance '{self.name}' {self.sense} rows={self.num_rows} "
            f"cols={self.num_columns} nnz={self.nnz} state={self.state.value}>"
        )
