"""Integration tests for the exact solver backends."""

import pytest
import requests
from dataclasses import replace
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from models import ScheduleRule, RuleAction, Enforcement, ScopeType, CriteriaType
from assignment.refiner import CancellationToken
from assignment.solver import (
    SolverError,
    SolverCancelled,
    SolverStatus,
    SolverResponse,
    MIPConfig,
    MIP_PRESETS,
    get_mip_preset,
    build_request,
    response_to_result,
    RemoteSolverClient,
    SolverApiConfig,
    LocalMIPSolver,
)

FAST = MIPConfig(time_limit_seconds=20, mip_gap=0.0)


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, payload=None, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Records posts and replays a canned response or exception."""

    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class TestRequest:
    """Tests for the serialized solver request."""

    def test_payload(self, micro_fleet):
        flights, aircraft, config = micro_fleet
        request = build_request(flights, aircraft, config, MIP_PRESETS["quick"])
        payload = request.to_payload()

        # Maintenance tail is not sent
        assert len(payload["aircraft"]) == 4
        assert payload["timeLimitSec"] == 15
        assert payload["mipGap"] == 0.05
        assert payload["tatMinutes"]["A321"] == 40
        assert payload["familyMap"]["A320"] == "A32X"

        first = payload["flights"][0]
        assert first["id"] == "F100@2024-01-01"
        assert first["endMs"] - first["startMs"] == 130 * 60000
        assert set(first) == {
            "id", "depStation", "arrStation", "startMs", "endMs",
            "icaoType", "pinned", "pinnedReg", "routeType",
        }

    def test_presets(self):
        assert get_mip_preset("deep").mip_gap == 0.005
        with pytest.raises(ValueError):
            get_mip_preset("huge")


class TestResponse:
    """Tests for response parsing and mapping."""

    def test_round_trip(self):
        response = SolverResponse(SolverStatus.FEASIBLE, assignments={"a@2024-01-01": "T1"})
        parsed = SolverResponse.from_payload(response.to_payload())
        assert parsed.status == SolverStatus.FEASIBLE
        assert parsed.assignments == {"a@2024-01-01": "T1"}

    def test_malformed(self):
        with pytest.raises(SolverError):
            SolverResponse.from_payload({"status": "Sideways"})
        with pytest.raises(SolverError):
            SolverResponse.from_payload(["Optimal"])

    def test_pins_restored_and_unknown_ignored(self, make_leg, config, two_tails):
        pinned = make_leg("1", "SGN", "HAN", "08:00", "10:00", pinned_registration="T1")
        free = make_leg("2", "SGN", "DAD", "08:00", "09:00")
        request = build_request([pinned, free], two_tails, config)
        response = SolverResponse(
            SolverStatus.OPTIMAL,
            assignments={str(pinned.key): "T2", "ghost@2024-01-01": "T1"},
        )

        result = response_to_result(response, request, config)

        assert result.method == "mip"
        assert result.assignments == {pinned.key: "T1"}
        assert result.overflow == [free]

    def test_no_solution_raises(self, make_leg, config, two_tails):
        request = build_request([make_leg("1", "SGN", "HAN", "08:00", "10:00")], two_tails, config)
        with pytest.raises(SolverError, match="Infeasible"):
            response_to_result(SolverResponse(SolverStatus.INFEASIBLE), request, config)


class TestRemoteSolverClient:
    """Tests for the HTTP client against a fake session."""

    @pytest.fixture
    def request_(self, micro_fleet):
        flights, aircraft, config = micro_fleet
        return build_request(flights, aircraft, config, MIP_PRESETS["quick"])

    @pytest.fixture
    def api_config(self):
        return SolverApiConfig(base_url="https://solver.example.test/")

    def test_success(self, request_, api_config):
        reply = FakeResponse({
            "status": "Optimal",
            "assignments": {"F100@2024-01-01": "VN-A321"},
            "overflow": [],
            "elapsedMs": 12,
        })
        session = FakeSession(reply)

        response = RemoteSolverClient(api_config, session=session).solve(request_)

        assert response.status == SolverStatus.OPTIMAL
        assert response.elapsed_ms == 12.0
        url, kwargs = session.calls[0]
        assert url == "https://solver.example.test/solve"
        assert kwargs["timeout"] == 15 + 60
        assert kwargs["json"]["timeLimitSec"] == 15
        assert kwargs["headers"]["Content-Type"] == "application/json"

    def test_http_error(self, request_, api_config):
        session = FakeSession(FakeResponse(status_code=503, text="busy"))
        with pytest.raises(SolverError, match="HTTP 503: busy"):
            RemoteSolverClient(api_config, session=session).solve(request_)

    def test_timeout(self, request_, api_config):
        session = FakeSession(requests.Timeout("read timed out"))
        with pytest.raises(SolverError, match="timed out"):
            RemoteSolverClient(api_config, session=session).solve(request_)

    def test_connection_error(self, request_, api_config):
        session = FakeSession(requests.ConnectionError("refused"))
        with pytest.raises(SolverError, match="Failed to reach solver"):
            RemoteSolverClient(api_config, session=session).solve(request_)

    def test_invalid_json(self, request_, api_config):
        session = FakeSession(FakeResponse(ValueError("Expecting value")))
        with pytest.raises(SolverError, match="invalid JSON"):
            RemoteSolverClient(api_config, session=session).solve(request_)

    def test_cancelled(self, request_, api_config):
        token = CancellationToken()
        token.cancel()
        session = FakeSession(FakeResponse({"status": "Optimal"}))
        with pytest.raises(SolverCancelled):
            RemoteSolverClient(api_config, session=session).solve(request_, token=token)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MIP_SOLVER_URL", "https://solver.example.test")
        assert SolverApiConfig.from_env().solve_url == "https://solver.example.test/solve"

        monkeypatch.delenv("MIP_SOLVER_URL")
        with pytest.raises(SolverError, match="MIP_SOLVER_URL"):
            SolverApiConfig.from_env()


class TestLocalMIPSolver:
    """Tests for the in-process CBC model."""

    def test_micro_fleet(self, micro_fleet):
        flights, aircraft, config = micro_fleet
        request = build_request(flights, aircraft, config, FAST)

        response = LocalMIPSolver(config).solve(request)
        assert response.status.has_solution
        assert response.total_variables > 0

        result = response_to_result(response, request, config)
        assert all(result.verify_partition(flights).values())
        assert {f.flight_id for f in result.overflow} == {"F300"}
        for flight in flights:
            if flight.flight_id in ("F202", "F203"):
                assert result.assignments.get(flight.key) != "VN-A602"

    def test_no_overlaps(self, micro_fleet):
        flights, aircraft, config = micro_fleet
        request = build_request(flights, aircraft, config, FAST)
        result = response_to_result(LocalMIPSolver(config).solve(request), request, config)
        for legs in result.rotations(flights).values():
            for earlier, later in zip(legs, legs[1:]):
                assert earlier.end <= later.start

    def test_size_guard(self, micro_fleet):
        flights, aircraft, config = micro_fleet
        request = build_request(flights, aircraft, config, FAST)
        response = LocalMIPSolver(config, max_variables=5).solve(request)
        assert response.status == SolverStatus.ERROR
        assert "too large" in response.message
        assert len(response.overflow) == len(flights)

    def test_all_pinned(self, make_leg, config, two_tails):
        leg = make_leg("1", "SGN", "HAN", "08:00", "10:00", pinned_registration="T2")
        request = build_request([leg], two_tails, config)
        response = LocalMIPSolver(config).solve(request)
        assert response.status == SolverStatus.OPTIMAL
        assert response.assignments == {str(leg.key): "T2"}

    def test_cancelled_before_start(self, micro_fleet):
        flights, aircraft, config = micro_fleet
        token = CancellationToken()
        token.cancel()
        with pytest.raises(SolverCancelled):
            LocalMIPSolver(config).solve(build_request(flights, aircraft, config, FAST), token)

    def test_daily_block_rules_left_out(self, make_leg, config, two_tails):
        """Test rules that need the whole day are not applied pair by pair."""
        daily = ScheduleRule(
            id="d", action=RuleAction.MUST_NOT_FLY, enforcement=Enforcement.HARD,
            criteria_type=CriteriaType.DAILY_BLOCK_TIME,
            criteria_values={"operator": "gt", "minutes": 60}
        )
        no_han = ScheduleRule(
            id="h", action=RuleAction.MUST_NOT_FLY, enforcement=Enforcement.HARD,
            scope_type=ScopeType.REGISTRATION, scope_values=("T1",),
            criteria_values={"airports": ["HAN"]}
        )
        ruled = replace(config, rules=(daily, no_han))
        leg = make_leg("1", "SGN", "HAN", "08:00", "10:00")

        solver = LocalMIPSolver(ruled)
        response = solver.solve(build_request([leg], two_tails, ruled, FAST))

        assert solver.rules == (no_han,)
        assert response.assignments == {str(leg.key): "T2"}
