from typing import Optional

import pytest
from scipy import sparse

from lpdriver.engine import SolverEngine
from lpdriver.exceptions import InstanceStateError, SolverEngineError, WarmStartIneligible
from lpdriver.instances import LOADLP_EXTRA_COEFFICIENTS, LOADLP_EXTRA_ROW, loadlp_problem
from lpdriver.model import BasisHandle, InstanceState, LPInstance, ModelBuilder, ModelMutator
from lpdriver.orchestrator import SolveOrchestrator, open_session
from lpdriver.schemas import Column, Row, SolveOptions, SolveResult


def named_example() -> LPInstance:
    rows, columns, matrix = loadlp_problem()
    instance = ModelBuilder.load(rows, columns, matrix, sense="min", name="lp")
    ModelBuilder.assign_names(instance, "row", ["c1", "c2", "c3", "c4"], 0, 3)
    ModelBuilder.assign_names(instance, "column", ["x", "y"], 0, 1)
    ModelMutator.change_sense(instance, "max")
    return instance


def add_c5(instance: LPInstance) -> int:
    ordinal = ModelMutator.add_row(instance, LOADLP_EXTRA_ROW.sense, LOADLP_EXTRA_ROW.rhs, LOADLP_EXTRA_COEFFICIENTS)
    ModelBuilder.assign_names(instance, "row", ["c5"], ordinal, ordinal)
    return ordinal


class FailingEngine(SolverEngine):
    name = "failing"

    def register(self, instance):
        self.instance = instance

    def solve_primal(self, options):
        raise SolverEngineError("numerical trouble")

    def solve_dual(self, basis, options):
        raise SolverEngineError("numerical trouble")

    def objective_value(self) -> Optional[float]:
        return None

    def status(self) -> Optional[str]:
        return None


class ScriptedEngine(SolverEngine):
    "Returns a fixed optimum and records which entry point was used."

    name = "scripted"

    def __init__(self):
        self.calls = []
        self.closed = False

    def register(self, instance):
        self.instance = instance

    def _result(self, method):
        handle = BasisHandle(
            owner=self.instance.token,
            num_rows=self.instance.num_rows,
            num_columns=self.instance.num_columns,
            engine=self.name,
        )
        return SolveResult(status="optimal", objective_value=1.0, x=[0.0] * self.instance.num_columns, method=method, basis=handle)

    def solve_primal(self, options):
        self.calls.append("primal")
        return self._result("primal")

    def solve_dual(self, basis, options):
        self.calls.append(("dual", basis.num_rows))
        return self._result("dual")

    def objective_value(self):
        return 1.0

    def status(self):
        return "optimal"

    def close(self):
        self.closed = True


def test_loadlp_example_end_to_end():
    instance = named_example()

    with SolveOrchestrator() as session:
        first = session.solve_cold(instance)
        assert first.status == "optimal"
        assert first.method == "primal"
        assert first.objective_value == pytest.approx(14.5, rel=1e-9)
        assert first.x == pytest.approx([5.5, 3.5], abs=1e-9)
        assert instance.state == InstanceState.SOLVED

        assert add_c5(instance) == 4
        assert instance.row_ordinal("c5") == 4
        assert instance.state == InstanceState.MODIFIED
        assert instance.warm_start_eligible

        revised = session.solve_warm(instance)

    assert revised.status == "optimal"
    assert revised.method == "dual"
    assert revised.objective_value == pytest.approx(10.0, rel=1e-9)
    assert revised.objective_value <= first.objective_value
    assert revised.x == pytest.approx([2.5, 5.0], abs=1e-9)
    assert instance.state == InstanceState.SOLVED


def test_warm_solve_matches_cold_solve_of_extended_problem():
    warm = named_example()
    cold = named_example()

    with SolveOrchestrator() as session:
        session.solve_cold(warm)
        add_c5(warm)
        add_c5(cold)
        warm_result = session.solve_warm(warm)
        cold_result = session.solve_cold(cold)

    assert warm_result.objective_value == pytest.approx(cold_result.objective_value, rel=1e-9)


def test_auto_solve_picks_warm_after_rows():
    instance = named_example()

    with SolveOrchestrator() as session:
        assert session.solve(instance).method == "primal"
        add_c5(instance)
        assert session.solve(instance).method == "dual"
        ModelMutator.change_objective(instance, [(0, 1.0)])
        assert session.solve(instance).method == "primal"


def test_warm_start_on_unsolved_instance():
    instance = named_example()

    with SolveOrchestrator() as session, pytest.raises(WarmStartIneligible):
        session.solve_warm(instance)


def test_warm_start_after_objective_change():
    instance = named_example()

    with SolveOrchestrator() as session:
        session.solve_cold(instance)
        ModelMutator.change_objective(instance, [(1, 3.0)])
        with pytest.raises(WarmStartIneligible):
            session.solve_warm(instance)
        assert session.solve_cold(instance).status == "optimal"


def test_warm_start_after_non_optimal_solve():
    instance = ModelBuilder.load(
        [Row(sense="<=", rhs=1.0), Row(sense=">=", rhs=2.0)],
        [Column(objective=1.0)],
        sparse.csc_matrix([[1.0], [1.0]]),
    )

    with SolveOrchestrator() as session:
        result = session.solve_cold(instance)
        assert result.status == "infeasible"
        assert instance.state == InstanceState.SOLVED
        assert instance.last_status == "infeasible"
        with pytest.raises(WarmStartIneligible):
            session.solve_warm(instance)


def test_basis_from_another_instance_is_rejected():
    first = named_example()
    second = named_example()

    with SolveOrchestrator() as session:
        session.solve_cold(first)
        session.solve_cold(second)
        with pytest.raises(WarmStartIneligible):
            session.solve_warm(second, basis=first.basis)


def test_stale_basis_is_rejected():
    instance = named_example()

    with SolveOrchestrator() as session:
        session.solve_cold(instance)
        stale = instance.basis
        add_c5(instance)
        session.solve_warm(instance)
        ModelMutator.add_row(instance, "<=", 100.0, [(0, 1.0)])
        with pytest.raises(WarmStartIneligible):
            session.solve_warm(instance, basis=stale)
        assert session.solve_warm(instance).status == "optimal"


def test_infeasible_and_unbounded_are_statuses():
    unbounded = ModelBuilder.load(
        [Row(sense="<=", rhs=1.0)],
        [Column(objective=1.0), Column(objective=0.0)],
        sparse.csc_matrix([[1.0, -1.0]]),
        sense="max",
    )

    with SolveOrchestrator() as session:
        result = session.solve_cold(unbounded)

    assert result.status == "unbounded"
    assert result.objective_value is None
    assert not result.is_feasible()


def test_iteration_limit_is_unfinished():
    instance = named_example()

    with SolveOrchestrator(options=SolveOptions(max_iters=1)) as session:
        result = session.solve_cold(instance)

    assert result.status == "unfinished"
    assert instance.basis is None


def test_engine_failure_leaves_state_untouched():
    instance = named_example()

    with SolveOrchestrator(engine=FailingEngine()) as session, pytest.raises(SolverEngineError):
        session.solve_cold(instance)

    assert instance.state == InstanceState.UNSOLVED
    assert instance.last_status is None


def test_any_engine_can_drive_the_lifecycle():
    engine = ScriptedEngine()
    instance = named_example()

    with SolveOrchestrator(engine=engine) as session:
        session.solve_cold(instance)
        add_c5(instance)
        session.solve_warm(instance)

    assert engine.calls == ["primal", ("dual", 4)]
    assert engine.closed


def test_basis_from_other_engine_is_rejected():
    instance = named_example()

    with SolveOrchestrator() as session:
        session.solve_cold(instance)
    add_c5(instance)

    with SolveOrchestrator(engine=ScriptedEngine()) as other, pytest.raises(WarmStartIneligible):
        other.solve_warm(instance)


def test_closed_session_refuses_to_solve():
    session = SolveOrchestrator()
    session.close()

    with pytest.raises(InstanceStateError):
        session.solve_cold(named_example())


def test_solving_unloaded_instance():
    with SolveOrchestrator() as session, pytest.raises(InstanceStateError):
        session.solve_cold(LPInstance())


def test_session_writes_solver_log(tmp_path):
    log_file = tmp_path / "solve.log"
    instance = named_example()

    with open_session(SolveOptions(log_file=log_file)) as session:
        session.solve_cold(instance)

    text = log_file.read_text()
    assert "optimal" in text
    assert "'lp'" in text


def test_session_closes_engine_on_error(tmp_path):
    engine = ScriptedEngine()

    with pytest.raises(InstanceStateError):
        with open_session(SolveOptions(log_file=tmp_path / "solve.log"), engine=engine) as session:
            session.solve_cold(LPInstance())

    assert engine.closed
