import math

import pytest
from scipy import sparse

from lpdriver.exceptions import (
    ConstructionError,
    DimensionMismatch,
    DuplicateName,
    InstanceStateError,
    InvalidBound,
    MalformedMatrix,
    NameRangeError,
)
from lpdriver.instances import loadlp_problem
from lpdriver.model import InstanceState, LPInstance, ModelBuilder
from lpdriver.schemas import Column, MatrixData, Row


def load_example(**kwargs) -> LPInstance:
    rows, columns, matrix = loadlp_problem()
    return ModelBuilder.load(rows, columns, matrix, **kwargs)


def test_load_populates_counts():
    instance = load_example(sense="max", name="lp")

    assert instance.loaded
    assert instance.num_rows == 4
    assert instance.num_columns == 2
    assert instance.nnz == 7
    assert instance.sense == "max"
    assert instance.state == InstanceState.UNSOLVED
    assert instance.basis is None
    assert instance.objective().tolist() == [2.0, 1.0]


def test_load_accepts_wire_and_scipy_matrices():
    rows = [Row(sense="<=", rhs=4.0), Row(sense=">=", rhs=1.0)]
    columns = [Column(objective=1.0), Column(objective=2.0)]

    from_data = ModelBuilder.load(rows, columns, MatrixData(column_start=[0, 2, 3], row_index=[0, 1, 0], coefficient=[1.0, 1.0, 2.0]))
    from_scipy = ModelBuilder.load(rows, columns, sparse.csc_matrix([[1.0, 2.0], [1.0, 0.0]]))

    assert from_data.matrix.to_dense().tolist() == from_scipy.matrix.to_dense().tolist()


def test_rows_without_entries_are_kept():
    rows = [Row(sense="<=", rhs=1.0), Row(sense="<=", rhs=2.0), Row(sense="<=", rhs=3.0)]
    columns = [Column()]

    instance = ModelBuilder.load(rows, columns, MatrixData(column_start=[0, 1], row_index=[0], coefficient=[1.0]))

    assert instance.num_rows == 3
    assert instance.matrix.num_rows == 3


def test_column_count_mismatch():
    rows, columns, matrix = loadlp_problem()

    with pytest.raises(DimensionMismatch):
        ModelBuilder.load(rows, columns[:1], matrix)


def test_row_reference_beyond_described_rows():
    rows, columns, matrix = loadlp_problem()

    with pytest.raises(DimensionMismatch):
        ModelBuilder.load(rows[:3], columns, matrix)


def test_malformed_column_start_is_reported():
    rows = [Row(sense="<=", rhs=1.0)] * 2
    columns = [Column(), Column()]

    with pytest.raises(MalformedMatrix):
        ModelBuilder.load(rows, columns, MatrixData(column_start=[0, 2, 1], row_index=[0, 1], coefficient=[1.0, 1.0], num_rows=2))


@pytest.mark.parametrize(
    "lb,ub",
    [(3.0, 1.0), (math.inf, math.inf), (-math.inf, -math.inf), (math.nan, 1.0)],
)
def test_invalid_bounds_name_the_column(lb, ub):
    rows, columns, matrix = loadlp_problem()
    columns[1] = Column(objective=1.0, lb=lb, ub=ub, name="y")

    with pytest.raises(InvalidBound) as excinfo:
        ModelBuilder.load(rows, columns, matrix)

    assert excinfo.value.ordinal == 1
    assert excinfo.value.name == "y"


def test_free_and_fixed_bounds_are_accepted():
    rows, columns, matrix = loadlp_problem()
    columns[0] = Column(objective=2.0, lb=-math.inf, ub=math.inf)
    columns[1] = Column(objective=1.0, lb=2.0, ub=2.0)

    instance = ModelBuilder.load(rows, columns, matrix)

    lower, upper = instance.column_bounds()
    assert lower.tolist() == [-math.inf, 2.0]
    assert upper.tolist() == [math.inf, 2.0]


def test_duplicate_names_in_load():
    rows, columns, matrix = loadlp_problem()
    columns = [Column(objective=2.0, name="x"), Column(objective=1.0, name="x")]

    with pytest.raises(DuplicateName):
        ModelBuilder.load(rows, columns, matrix)


def test_range_row_needs_non_negative_width():
    with pytest.raises(ValueError):
        Row(sense="range", rhs=5.0, range_value=-1.0)
    with pytest.raises(ValueError):
        Row(sense="<=", rhs=5.0, range_value=1.0)

    row = Row(sense="range", rhs=5.0, range_value=2.0)
    assert (row.lower, row.upper) == (3.0, 5.0)


def test_reload_into_existing_instance_resets_state():
    instance = load_example()
    instance.state = InstanceState.SOLVED
    rows, columns, matrix = loadlp_problem()

    ModelBuilder.load(rows[:2], columns, sparse.csc_matrix([[1.0, 1.0], [0.0, 1.0]]), instance=instance)

    assert instance.num_rows == 2
    assert instance.state == InstanceState.UNSOLVED


def test_assign_names_and_lookups():
    instance = load_example()

    ModelBuilder.assign_names(instance, "row", ["c1", "c2", "c3", "c4"], 0, 3)
    ModelBuilder.assign_names(instance, "column", ["x", "y"], 0, 1)

    assert instance.row_name(2) == "c3"
    assert instance.row_ordinal("c4") == 3
    assert instance.column_ordinal("y") == 1
    assert [col.name for col in instance.columns] == ["x", "y"]


def test_assign_names_is_idempotent():
    instance = load_example()

    ModelBuilder.assign_names(instance, "row", ["c1", "c2", "c3", "c4"], 0, 3)
    ModelBuilder.assign_names(instance, "row", ["c1", "c2", "c3", "c4"], 0, 3)

    assert [row.name for row in instance.rows] == ["c1", "c2", "c3", "c4"]


def test_renaming_inside_range_frees_old_names():
    instance = load_example()
    ModelBuilder.assign_names(instance, "row", ["a", "b"], 0, 1)

    ModelBuilder.assign_names(instance, "row", ["b", "a"], 0, 1)

    assert instance.row_ordinal("b") == 0
    assert instance.row_ordinal("a") == 1


def test_name_clash_outside_range_leaves_names_unchanged():
    instance = load_example()
    ModelBuilder.assign_names(instance, "row", ["c1", "c2", "c3", "c4"], 0, 3)

    with pytest.raises(DuplicateName) as excinfo:
        ModelBuilder.assign_names(instance, "row", ["c9", "c4"], 0, 1)

    assert excinfo.value.name == "c4"
    assert [row.name for row in instance.rows] == ["c1", "c2", "c3", "c4"]


def test_repeated_name_within_call():
    instance = load_example()

    with pytest.raises(DuplicateName):
        ModelBuilder.assign_names(instance, "column", ["x", "x"], 0, 1)


@pytest.mark.parametrize(
    "names,first,last",
    [
        (["a"], -1, 0),
        (["a", "b"], 3, 4),
        (["a"], 2, 1),
        (["a", "b", "c"], 0, 1),
    ],
)
def test_bad_name_ranges(names, first, last):
    instance = load_example()

    with pytest.raises(NameRangeError):
        ModelBuilder.assign_names(instance, "row", names, first, last)


def test_empty_name_is_rejected():
    instance = load_example()

    with pytest.raises(ConstructionError):
        ModelBuilder.assign_names(instance, "column", ["x", ""], 0, 1)


def test_naming_before_load_fails():
    with pytest.raises(InstanceStateError):
        ModelBuilder.assign_names(LPInstance(), "row", ["a"], 0, 0)


def test_name_reused_on_another_row():
    instance = load_example()
    ModelBuilder.assign_names(instance, "row", ["dup"], 0, 0)

    with pytest.raises(DuplicateName) as excinfo:
        ModelBuilder.assign_names(instance, "row", ["dup"], 1, 1)

    assert excinfo.value.ordinal == 1
    assert instance.row_name(1) is None


@pytest.mark.parametrize(
    "row",
    [
        Row(sense="<=", rhs=math.nan),
        Row(sense="<=", rhs=-math.inf),
        Row(sense=">=", rhs=math.inf),
        Row(sense="==", rhs=math.inf),
        Row(sense="range", rhs=math.inf, range_value=1.0),
        Row(sense="range", rhs=5.0, range_value=math.inf),
    ],
)
def test_unusable_row_limits_name_the_row(row):
    rows, columns, matrix = loadlp_problem()
    rows[2] = row

    with pytest.raises(InvalidBound) as excinfo:
        ModelBuilder.load(rows, columns, matrix)

    assert excinfo.value.ordinal == 2


def test_open_inequality_sides_are_free_rows():
    rows, columns, matrix = loadlp_problem()
    rows[0] = Row(sense="<=", rhs=math.inf)
    rows[1] = Row(sense=">=", rhs=-math.inf)

    instance = ModelBuilder.load(rows, columns, matrix)

    lower, upper = instance.row_bounds()
    assert (lower[0], upper[0]) == (-math.inf, math.inf)
    assert (lower[1], upper[1]) == (-math.inf, math.inf)


@pytest.mark.parametrize("objective", [math.nan, math.inf])
def test_non_finite_objective_is_rejected(objective):
    rows, columns, matrix = loadlp_problem()
    columns[0] = Column(objective=objective, name="x")

    with pytest.raises(ConstructionError) as excinfo:
        ModelBuilder.load(rows, columns, matrix)

    assert excinfo.value.ordinal == 0


def test_declared_row_count_beyond_described_rows():
    rows = [Row(sense="<=", rhs=1.0)]

    with pytest.raises(DimensionMismatch, match="declares 3 rows"):
        ModelBuilder.load(rows, [Column()], MatrixData(column_start=[0, 1], row_index=[0], coefficient=[1.0], num_rows=3))
