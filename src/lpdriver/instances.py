from __future__ import annotations

import random
from typing import Any, Dict, List, Optional, Tuple

from .matrix import SparseMatrix
from .schemas import Column, MatrixData, Row

Problem = Tuple[List[Row], List[Column], SparseMatrix]


def loadlp_problem() -> Problem:
    """
    The classic two-variable LP::

        maximise    2x + y
        subject to  c1:  x + 4y <= 24
                    c2:       y <=  5
                    c3: 3x +  y <= 20
                    c4:  x +  y <=  9
                    0 <= x, y

    Rows and columns come unnamed; names are assigned separately.
    """
    rows = [Row(sense="<=", rhs=rhs) for rhs in (24.0, 5.0, 20.0, 9.0)]
    columns = [Column(objective=2.0), Column(objective=1.0)]
    matrix = SparseMatrix.build(
        column_start=[0, 3, 7],
        row_index=[0, 2, 3, 0, 1, 2, 3],
        coefficient=[1, 3, 1, 4, 1, 1, 1],
        num_rows=4,
    )
    return rows, columns, matrix


# c5: 6x + y <= 20
LOADLP_EXTRA_ROW = Row(sense="<=", rhs=20.0, name="c5")
LOADLP_EXTRA_COEFFICIENTS = [(0, 6.0), (1, 1.0)]


def generate_random_problem(
    num_rows: int,
    num_columns: int,
    density: float = 0.5,
    seed: Optional[int] = None,
) -> Problem:
    """
    Random feasible, bounded ``<=`` LP for a maximisation.

    Coefficients are positive and every column has at least one entry, so
    ``x = 0`` is feasible and the optimum is finite.
    """
    rng = random.Random(seed)
    rows = [
        Row(sense="<=", rhs=rng.uniform(num_columns * 2.0, num_columns * 6.0), name=f"c{i}")
        for i in range(num_rows)
    ]
    columns = [Column(objective=rng.uniform(1.0, 4.0), name=f"x{j}") for j in range(num_columns)]

    column_start = [0]
    row_index: List[int] = []
    coefficient: List[float] = []
    for _ in range(num_columns):
        picked = [i for i in range(num_rows) if rng.random() < density]
        if not picked and num_rows:
            picked = [rng.randrange(num_rows)]
        row_index.extend(picked)
        coefficient.extend(rng.uniform(0.5, 5.0) for _ in picked)
        column_start.append(len(row_index))
    matrix = SparseMatrix.build(column_start, row_index, coefficient, num_rows=num_rows)
    return rows, columns, matrix


def random_cut(num_columns: int, rng: random.Random, density: float = 0.5) -> Tuple[Row, List[Tuple[int, float]]]:
    "A random ``<=`` row that keeps ``x = 0`` feasible."
    entries = [(j, rng.uniform(0.5, 5.0)) for j in range(num_columns) if rng.random() < density]
    if not entries and num_columns:
        entries = [(rng.randrange(num_columns), rng.uniform(0.5, 5.0))]
    return Row(sense="<=", rhs=rng.uniform(1.0, num_columns * 3.0)), entries


def problem_to_dict(problem: Problem, name: str = "random-lp", sense: str = "max") -> Dict[str, Any]:
    rows, columns, matrix = problem
    data = MatrixData(
        column_start=matrix.column_start.tolist(),
        row_index=matrix.row_index.tolist(),
        coefficient=matrix.coefficient.tolist(),
        num_rows=matrix.num_rows,
    )
    return {
        "name": name,
        "sense": sense,
        "rows": [row.model_dump() for row in rows],
        "columns": [col.model_dump() for col in columns],
        "matrix": data.model_dump(),
    }
