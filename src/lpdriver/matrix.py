"""
Column-compressed constraint matrix with an append-only row arena.

For each column ``j`` the entries of the column-run block are stored in
``row_index[column_start[j]:column_start[j + 1]]`` and the matching
``coefficient`` slice, so ``column_start`` has one more element than there
are columns. Rows appended after construction go to a separate row-major
arena; appending rows therefore never rewrites ``column_start``.
"""
from __future__ import annotations

from typing import Iterator, Optional, Sequence, Tuple

import numpy as np
from scipy import sparse

from .exceptions import DimensionMismatch, MalformedMatrix

RowEntries = Sequence[Tuple[int, float]]


def _as_index_array(values, what: str, ordinal: Optional[int] = None) -> np.ndarray:
    arr = np.asarray(values if values is not None else [])
    if arr.ndim != 1:
        raise MalformedMatrix(f"{what} must be one-dimensional, got shape {arr.shape}.", ordinal=ordinal)
    if arr.size and arr.dtype.kind not in "iu":
        if arr.dtype.kind != "f" or not np.all(np.isfinite(arr)) or not np.all(arr == np.floor(arr)):
            raise MalformedMatrix(f"{what} must hold integers.", ordinal=ordinal)
    return np.ascontiguousarray(arr, dtype=np.int64)


def _as_value_array(values, what: str) -> np.ndarray:
    arr = np.ascontiguousarray(np.asarray(values if values is not None else [], dtype=np.float64))
    if arr.ndim != 1:
        raise MalformedMatrix(f"{what} must be one-dimensional, got shape {arr.shape}.")
    bad = np.nonzero(~np.isfinite(arr))[0]
    if bad.size:
        raise MalformedMatrix(f"{what}[{int(bad[0])}] is not finite ({arr[bad[0]]}).")
    return arr


def _check_runs(
    column_start: np.ndarray,
    row_index: np.ndarray,
    coefficient: np.ndarray,
    num_rows: int,
    first_column: int = 0,
) -> None:
    if column_start.size == 0:
        raise MalformedMatrix("column_start needs at least one element.")
    if column_start[0] != 0:
        raise MalformedMatrix(f"column_start must begin at 0, got {int(column_start[0])}.")
    steps = np.diff(column_start)
    drops = np.nonzero(steps < 0)[0]
    if drops.size:
        col = first_column + int(drops[0])
        raise MalformedMatrix(
            f"column_start decreases at column {col} "
            f"({int(column_start[drops[0]])} -> {int(column_start[drops[0] + 1])}).",
            ordinal=col,
        )
    nnz = int(column_start[-1])
    if row_index.size != nnz or coefficient.size != nnz:
        raise MalformedMatrix(
            f"column_start declares {nnz} entries but row_index has {row_index.size} "
            f"and coefficient has {coefficient.size}."
        )
    if nnz == 0:
        return

    cols = np.repeat(np.arange(steps.size), steps)
    out_of_range = np.nonzero((row_index < 0) | (row_index >= num_rows))[0]
    if out_of_range.size:
        k = int(out_of_range[0])
        col = first_column + int(cols[k])
        raise MalformedMatrix(
            f"column {col} references row {int(row_index[k])}, outside 0..{num_rows - 1}.",
            ordinal=col,
        )

    order = np.lexsort((row_index, cols))
    rows_sorted = row_index[order]
    cols_sorted = cols[order]
    dup = np.nonzero((rows_sorted[1:] == rows_sorted[:-1]) & (cols_sorted[1:] == cols_sorted[:-1]))[0]
    if dup.size:
        col = first_column + int(cols_sorted[dup[0]])
        raise MalformedMatrix(
            f"column {col} lists row {int(rows_sorted[dup[0]])} more than once.",
            ordinal=col,
        )


class _Arena:
    """Append-only numpy buffer that doubles its capacity when full."""

    def __init__(self, dtype, capacity: int = 16) -> None:
        self._data = np.empty(max(capacity, 1), dtype=dtype)
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def extend(self, values) -> None:
        values = np.asarray(values, dtype=self._data.dtype)
        needed = self._size + values.size
        if needed > self._data.size:
            capacity = self._data.size
            while capacity < needed:
                capacity *= 2
            grown = np.empty(capacity, dtype=self._data.dtype)
            grown[: self._size] = self._data[: self._size]
            self._data = grown
        self._data[self._size : needed] = values
        self._size = needed

    def view(self) -> np.ndarray:
        out = self._data[: self._size]
        out.flags.writeable = False
        return out

    def copy(self) -> "_Arena":
        clone = _Arena(self._data.dtype, self._data.size)
        clone.extend(self._data[: self._size])
        return clone


class SparseMatrix:
    """
    Constraint matrix of an LP instance.

    Build it with :meth:`build` (validated column-compressed arrays),
    :meth:`from_scipy` or :meth:`from_dense`. An empty matrix of a given shape
    is ``SparseMatrix(num_rows, num_columns)``.
    """

    def __init__(self, num_rows: int = 0, num_columns: int = 0) -> None:
        if num_rows < 0 or num_columns < 0:
            raise DimensionMismatch(f"Matrix shape must be non-negative, got ({num_rows}, {num_columns}).")
        self._num_rows = int(num_rows)
        self._column_start = np.zeros(num_columns + 1, dtype=np.int64)
        self._row_index = np.zeros(0, dtype=np.int64)
        self._coefficient = np.zeros(0, dtype=np.float64)
        # rows with ordinal >= _arena_first are stored row-major in the arena
        self._arena_first = self._num_rows
        self._arena_start = _Arena(np.int64)
        self._arena_start.extend([0])
        self._arena_column = _Arena(np.int64)
        self._arena_value = _Arena(np.float64)

    @classmethod
    def build(
        cls,
        column_start,
        row_index,
        coefficient,
        num_rows: Optional[int] = None,
    ) -> "SparseMatrix":
        starts = _as_index_array(column_start, "column_start")
        rows = _as_index_array(row_index, "row_index")
        values = _as_value_array(coefficient, "coefficient")
        if num_rows is None:
            num_rows = int(rows.max()) + 1 if rows.size else 0
        elif num_rows < 0:
            raise MalformedMatrix(f"num_rows must be non-negative, got {num_rows}.")
        _check_runs(starts, rows, values, num_rows)

        matrix = cls(num_rows, starts.size - 1)
        matrix._column_start = starts.copy()
        matrix._row_index = rows.copy()
        matrix._coefficient = values.copy()
        return matrix

    @classmethod
    def from_scipy(cls, matrix: sparse.spmatrix) -> "SparseMatrix":
        csc = sparse.csc_matrix(matrix)
        csc.sum_duplicates()
        csc.sort_indices()
        return cls.build(csc.indptr, csc.indices, csc.data, num_rows=csc.shape[0])

    @classmethod
    def from_dense(cls, array) -> "SparseMatrix":
        dense = np.atleast_2d(np.asarray(array, dtype=np.float64))
        return cls.from_scipy(sparse.csc_matrix(dense))

    @property
    def num_rows(self) -> int:
        return self._num_rows

    @property
    def num_columns(self) -> int:
        return self._column_start.size - 1

    @property
    def shape(self) -> Tuple[int, int]:
        return self._num_rows, self.num_columns

    @property
    def nnz(self) -> int:
        return int(self._column_start[-1]) + len(self._arena_column)

    @property
    def column_start(self) -> np.ndarray:
        out = self._column_start.view()
        out.flags.writeable = False
        return out

    @property
    def row_index(self) -> np.ndarray:
        out = self._row_index.view()
        out.flags.writeable = False
        return out

    @property
    def coefficient(self) -> np.ndarray:
        out = self._coefficient.view()
        out.flags.writeable = False
        return out

    @property
    def appended_rows(self) -> int:
        "Number of rows held in the row arena."
        return self._num_rows - self._arena_first

    def column(self, j: int) -> Tuple[np.ndarray, np.ndarray]:
        "Row indices and values of column ``j`` (column-run entries first)."
        self._check_column(j)
        lo, hi = self._column_start[j], self._column_start[j + 1]
        rows = self._row_index[lo:hi]
        values = self._coefficient[lo:hi]
        if len(self._arena_column):
            hits = np.nonzero(self._arena_column.view() == j)[0]
            if hits.size:
                owners = np.searchsorted(self._arena_start.view(), hits, side="right") - 1
                rows = np.concatenate([rows, owners + self._arena_first])
                values = np.concatenate([values, self._arena_value.view()[hits]])
        return rows.copy(), values.copy()

    def row(self, i: int) -> Tuple[np.ndarray, np.ndarray]:
        "Column indices and values of row ``i``."
        if not 0 <= i < self._num_rows:
            raise IndexError(f"Row {i} out of range 0..{self._num_rows - 1}.")
        hits = np.nonzero(self._row_index == i)[0]
        cols = np.searchsorted(self._column_start, hits, side="right") - 1
        values = self._coefficient[hits]
        if i >= self._arena_first:
            starts = self._arena_start.view()
            k = i - self._arena_first
            lo, hi = starts[k], starts[k + 1]
            cols = np.concatenate([cols, self._arena_column.view()[lo:hi]])
            values = np.concatenate([values, self._arena_value.view()[lo:hi]])
        return cols.astype(np.int64), values.copy()

    def triplets(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        "All entries as (rows, cols, values) arrays."
        counts = np.diff(self._column_start)
        cols = np.repeat(np.arange(self.num_columns, dtype=np.int64), counts)
        rows = self._row_index
        values = self._coefficient
        if len(self._arena_column):
            per_row = np.diff(self._arena_start.view())
            arena_rows = np.repeat(
                np.arange(self._arena_first, self._num_rows, dtype=np.int64), per_row
            )
            rows = np.concatenate([rows, arena_rows])
            cols = np.concatenate([cols, self._arena_column.view()])
            values = np.concatenate([values, self._arena_value.view()])
        return rows.copy(), cols.copy(), values.copy()

    def entries(self) -> Iterator[Tuple[int, int, float]]:
        rows, cols, values = self.triplets()
        for r, c, v in zip(rows, cols, values):
            yield int(r), int(c), float(v)

    def to_scipy(self) -> sparse.csc_matrix:
        rows, cols, values = self.triplets()
        return sparse.csc_matrix((values, (rows, cols)), shape=self.shape)

    def to_dense(self) -> np.ndarray:
        return self.to_scipy().toarray()

    def append_columns(self, column_start, row_index, coefficient) -> int:
        """
        Append columns given in column-compressed form.

        ``column_start`` is relative to the new entries (it starts at 0).
        Returns the ordinal of the first new column.
        """
        starts = _as_index_array(column_start, "column_start")
        rows = _as_index_array(row_index, "row_index")
        values = _as_value_array(coefficient, "coefficient")
        first = self.num_columns
        _check_runs(starts, rows, values, self._num_rows, first_column=first)

        offset = self._column_start[-1]
        self._column_start = np.concatenate([self._column_start, starts[1:] + offset])
        self._row_index = np.concatenate([self._row_index, rows])
        self._coefficient = np.concatenate([self._coefficient, values])
        return first

    def append_rows(self, rows: Sequence[RowEntries]) -> int:
        """
        Append rows, one sequence of ``(column, value)`` pairs per row.

        Everything is validated before anything is stored. Returns the ordinal
        of the first new row.
        """
        first = self._num_rows
        prepared = []
        for k, entries in enumerate(rows):
            ordinal = first + k
            entries = list(entries)
            cols = _as_index_array([c for c, _ in entries], f"row {ordinal} column indices", ordinal=ordinal)
            values = np.array([float(v) for _, v in entries], dtype=np.float64)
            out_of_range = np.nonzero((cols < 0) | (cols >= self.num_columns))[0]
            if out_of_range.size:
                raise DimensionMismatch(
                    f"row {ordinal} references column {int(cols[out_of_range[0]])}, "
                    f"but the matrix has {self.num_columns} columns.",
                    ordinal=ordinal,
                )
            uniq, counts = np.unique(cols, return_counts=True)
            if np.any(counts > 1):
                repeated = int(uniq[np.argmax(counts > 1)])
                raise MalformedMatrix(
                    f"row {ordinal} lists column {repeated} more than once.", ordinal=ordinal
                )
            if not np.all(np.isfinite(values)):
                raise MalformedMatrix(f"row {ordinal} has a non-finite coefficient.", ordinal=ordinal)
            prepared.append((cols, values))

        for cols, values in prepared:
            self._arena_column.extend(cols)
            self._arena_value.extend(values)
            self._arena_start.extend([len(self._arena_column)])
        self._num_rows += len(prepared)
        return first

    def pad_rows(self, num_rows: int) -> None:
        "Grow the row count to ``num_rows`` with empty rows."
        if num_rows < self._num_rows:
            raise DimensionMismatch(
                f"Cannot shrink matrix from {self._num_rows} to {num_rows} rows."
            )
        extra = num_rows - self._num_rows
        if self.appended_rows == 0:
            self._arena_first += extra
        else:
            self._arena_start.extend([len(self._arena_column)] * extra)
        self._num_rows = num_rows

    def copy(self) -> "SparseMatrix":
        clone = SparseMatrix(0, 0)
        clone._num_rows = self._num_rows
        clone._column_start = self._column_start.copy()
        clone._row_index = self._row_index.copy()
        clone._coefficient = self._coefficient.copy()
        clone._arena_first = self._arena_first
        clone._arena_start = self._arena_start.copy()
        clone._arena_column = self._arena_column.copy()
        clone._arena_value = self._arena_value.copy()
        return clone

    def _check_column(self, j: int) -> None:
        if not 0 <= j < self.num_columns:
            raise IndexError(f"Column {j} out of range 0..{self.num_columns - 1}.")

    def __repr__(self) -> str:
        return f"<SparseMatrix {self._num_rows}x{self.num_columns} nnz={self.nnz}>"
