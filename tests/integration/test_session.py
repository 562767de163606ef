"""Integration tests for the interactive assignment session."""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from models import FlightKey
from assignment.config import AssignmentMethod
from assignment.overrides import InMemoryOverrideRepository, ManualOverride
from assignment.session import AssignmentSession
from assignment.solver import SolverError, SolverCancelled, SolverResponse, SolverStatus


class FailingSolver:
    def __init__(self, error):
        self.error = error
        self.calls = 0

    def solve(self, request, token=None):
        self.calls += 1
        raise self.error


class CancellingSolver:
    """Fires the session's token mid-solve, the way a user cancel would."""

    def __init__(self, session_ref):
        self.session_ref = session_ref

    def solve(self, request, token=None):
        self.session_ref[0].cancel_solve()
        if token.cancelled:
            raise SolverCancelled("Solver request cancelled")
        return SolverResponse(SolverStatus.OPTIMAL)


class PinsOnlySolver:
    """Answers with the pins and nothing else."""

    def solve(self, request, token=None):
        return SolverResponse(
            SolverStatus.FEASIBLE,
            assignments={
                str(f.key): f.pinned_registration for f in request.flights if f.is_pinned
            },
        )


@pytest.fixture
def session(micro_fleet):
    flights, aircraft, config = micro_fleet
    s = AssignmentSession(flights, aircraft, config)
    yield s
    s.close()


class TestConstruct:

    def test_method_tracked(self, session):
        session.construct()
        assert session.active_method == "minimize"
        session.construct(AssignmentMethod.BALANCE)
        assert session.active_method == "balance"
        assert session.result.method == "balance"


class TestExactSolve:
    """Tests for exact-solve recovery."""

    def test_no_solver(self, session):
        before = session.construct()
        assert session.solve_exact() is before
        assert session.notifications[-1].level == "error"

    def test_failure_restores(self, session):
        before = session.construct()
        session.solver = FailingSolver(SolverError("HTTP 500"))

        returned = session.solve_exact("quick")

        assert returned is before
        assert session.result is before
        assert session.active_method == "minimize"
        assert session.notifications[-1].level == "error"
        assert "HTTP 500" in session.notifications[-1].message

    def test_infeasible_restores(self, session):
        before = session.construct()

        class Infeasible:
            def solve(self, request, token=None):
                return SolverResponse(SolverStatus.INFEASIBLE, message="no cover")

        session.solver = Infeasible()
        session.solve_exact()
        assert session.result is before
        assert session.active_method == "minimize"
        assert session.last_solver_response.status == SolverStatus.INFEASIBLE

    def test_cancel_restores(self, session):
        before = session.construct()
        session.solver = CancellingSolver([session])

        session.solve_exact()

        assert session.result is before
        assert session.active_method == "minimize"
        assert session.notifications[-1].level == "warning"

    def test_success(self, session, micro_fleet):
        flights, _, _ = micro_fleet
        session.construct()
        session.solver = PinsOnlySolver()

        result = session.solve_exact()

        assert session.active_method == "mip"
        assert result.method == "mip"
        assert all(result.verify_partition(flights).values())
        assert result.summary.assigned == 1


class TestRefinement:

    def test_requires_result(self, session):
        with pytest.raises(ValueError):
            session.start_refinement("quick")

    def test_cancelled_refinement_adopted(self, session, micro_fleet):
        flights, _, _ = micro_fleet
        session.construct()
        handle = session.start_refinement("quick", seed=4)
        session.cancel_refinement()

        result = session.finish_refinement(handle, timeout=30)

        assert session.active_method == "refined"
        assert session.last_refinement.cancelled
        assert all(result.verify_partition(flights).values())
        assert session.notifications[-1].level == "info"


class TestSwap:
    """Tests for interactive swaps and pinning."""

    @pytest.fixture
    def repo(self):
        return InMemoryOverrideRepository()

    @pytest.fixture
    def pinned_session(self, make_leg, config, two_tails, repo):
        flights = [
            make_leg("a1", "SGN", "HAN", "08:00", "10:00"),
            make_leg("b1", "SGN", "DAD", "08:00", "09:30"),
        ]
        s = AssignmentSession(flights, two_tails, config, overrides=repo)
        yield s
        s.close()

    def test_swap_with_pin(self, pinned_session, repo):
        result = pinned_session.construct()
        a1, b1 = pinned_session.flights
        reg_a, reg_b = result.assignments[a1.key], result.assignments[b1.key]

        swapped = pinned_session.swap([a1], reg_a, [b1], reg_b, pin=True)

        assert swapped.assignments[a1.key] == reg_b
        assert repo.get(a1.key) == ManualOverride("a1", a1.date, reg_b)
        assert len(repo) == 2
        assert {f.pinned_registration for f in pinned_session.flights} == {reg_a, reg_b}

        rebuilt = pinned_session.construct()
        assert rebuilt.assignments[a1.key] == reg_b

    def test_pinned_legs_move_only_when_repinned(self, make_leg, config, two_tails, repo, day):
        """Test a pinned leg moves only when its override is rewritten."""
        repo.commit(ManualOverride("a1", day, "T1"))
        flights = [
            make_leg("a1", "SGN", "HAN", "08:00", "10:00"),
            make_leg("b1", "SGN", "DAD", "08:00", "09:30"),
        ]
        s = AssignmentSession(flights, two_tails, config, overrides=repo)
        try:
            before = s.construct()
            a1, b1 = s.flights
            reg_b = before.assignments[b1.key]

            with pytest.raises(ValueError, match="Pinned"):
                s.swap([a1], "T1", [b1], reg_b)
            assert s.result is before

            swapped = s.swap([a1], "T1", [b1], reg_b, pin=True)
            assert swapped.assignments[a1.key] == reg_b
            assert repo.get(a1.key).registration == reg_b
            assert all(s.result.verify_partition(s.flights).values())
        finally:
            s.close()

    def test_pin_without_repository_keeps_pins(self, make_leg, config, two_tails):
        flights = [
            make_leg("a1", "SGN", "HAN", "08:00", "10:00", pinned_registration="T1"),
            make_leg("b1", "SGN", "DAD", "08:00", "09:30", pinned_registration="T2"),
        ]
        s = AssignmentSession(flights, two_tails, config)
        try:
            before = s.construct()
            with pytest.raises(ValueError, match="Pinned"):
                s.swap([flights[0]], "T1", [flights[1]], "T2", pin=True)
            assert s.result is before
        finally:
            s.close()

    def test_infeasible_swap_leaves_result(self, make_leg, config, two_tails):
        flights = [
            make_leg("a1", "SGN", "HAN", "08:00", "10:00", pinned_registration="T1"),
            make_leg("b1", "SGN", "DAD", "09:00", "10:30", pinned_registration="T2"),
        ]
        s = AssignmentSession(flights, two_tails, config)
        try:
            before = s.construct()
            with pytest.raises(ValueError):
                s.swap([flights[0]], "T1", [], "T2")
            assert s.result is before
        finally:
            s.close()

    def test_annotate(self, make_leg, config, two_tails):
        flights = [
            make_leg("a1", "SGN", "HAN", "08:00", "10:00", pinned_registration="T1"),
            make_leg("a2", "HAN", "SGN", "10:30", "12:00", pinned_registration="T1"),
        ]
        s = AssignmentSession(flights, two_tails, config)
        try:
            s.construct()
            notes = s.annotate("T1")
            assert len(notes) == 1
            assert notes[0].has_problem
        finally:
            s.close()

    def test_existing_overrides_merged(self, make_leg, config, two_tails, day):
        repo = InMemoryOverrideRepository([ManualOverride("a1", day, "T2")])
        flights = [make_leg("a1", "SGN", "HAN", "08:00", "10:00")]
        s = AssignmentSession(flights, two_tails, config, overrides=repo)
        try:
            assert s.construct().assignments[FlightKey("a1", day)] == "T2"
            assert flights[0].pinned_registration is None
        finally:
            s.close()
