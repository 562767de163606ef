"""Solver request/response contract shared by the remote and local backends."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from models import FlightLeg, FlightKey, AssignableAircraft, TailAssignmentResult
from assignment.config import EngineConfig, OVERFLOW_COST, CHAIN_BREAK_COST
from assignment.conflicts import annotate_assignment, find_override_conflicts

logger = logging.getLogger(__name__)

_EPOCH_ORDINAL = date(1970, 1, 1).toordinal()


class SolverError(RuntimeError):
    """The solver could not produce an assignment."""


class SolverCancelled(SolverError):
    """The solve was cancelled before it returned."""


class SolverStatus(Enum):
    OPTIMAL = "Optimal"
    FEASIBLE = "Feasible"
    INFEASIBLE = "Infeasible"
    ERROR = "Error"

    @property
    def has_solution(self) -> bool:
        return self in (SolverStatus.OPTIMAL, SolverStatus.FEASIBLE)


@dataclass(frozen=True)
class MIPConfig:
    """Time and optimality budget for an exact solve."""
    time_limit_seconds: int
    mip_gap: float


MIP_PRESETS: Dict[str, MIPConfig] = {
    "quick": MIPConfig(time_limit_seconds=15, mip_gap=0.05),
    "normal": MIPConfig(time_limit_seconds=45, mip_gap=0.02),
    "deep": MIPConfig(time_limit_seconds=120, mip_gap=0.005),
}


def get_mip_preset(name: str) -> MIPConfig:
    try:
        return MIP_PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown solver preset '{name}' (choose from {sorted(MIP_PRESETS)})")


def epoch_ms(flight: FlightLeg, minutes: int) -> int:
    """Absolute UTC milliseconds for a minute offset on the flight's date."""
    return ((flight.date.toordinal() - _EPOCH_ORDINAL) * 1440 + minutes) * 60000


@dataclass
class SolverRequest:
    """
    Everything an exact solver needs, in serializable form.

    Flight ids on the wire are ``FlightKey`` strings ("id@date").
    """
    flights: List[FlightLeg]
    aircraft: List[AssignableAircraft]
    tat_minutes: Dict[str, int]
    time_limit_seconds: int
    mip_gap: float
    allow_family_substitution: bool = False
    type_families: Dict[str, str] = field(default_factory=dict)
    chain_break_cost: float = CHAIN_BREAK_COST
    overflow_cost: float = OVERFLOW_COST

    def flight_index(self) -> Dict[str, FlightLeg]:
        return {str(f.key): f for f in self.flights}

    def to_payload(self) -> Dict[str, Any]:
        """JSON body for the remote solver service."""
        return {
            "flights": [
                {
                    "id": str(f.key),
                    "depStation": f.dep_station,
                    "arrStation": f.arr_station,
                    "startMs": epoch_ms(f, f.std_minutes),
                    "endMs": epoch_ms(f, f.sta_minutes),
                    "icaoType": f.aircraft_type,
                    "pinned": f.is_pinned,
                    "pinnedReg": f.pinned_registration,
                    "routeType": "domestic" if f.domestic else "international",
                }
                for f in self.flights
            ],
            "aircraft": [
                {
                    "index": i,
                    "registration": ac.registration,
                    "icaoType": ac.aircraft_type,
                    "family": self.type_families.get(ac.aircraft_type),
                }
                for i, ac in enumerate(self.aircraft)
            ],
            "tatMinutes": dict(self.tat_minutes),
            "timeLimitSec": self.time_limit_seconds,
            "mipGap": self.mip_gap,
            "allowFamilySub": self.allow_family_substitution,
            "familyMap": dict(self.type_families),
            "chainBreakCost": self.chain_break_cost,
            "overflowCost": self.overflow_cost,
        }


@dataclass
class SolverResponse:
    """Solver output plus diagnostics."""
    status: SolverStatus
    assignments: Dict[str, str] = field(default_factory=dict)
    overflow: List[str] = field(default_factory=list)
    chain_breaks: List[Dict[str, str]] = field(default_factory=list)
    objective_value: float = 0.0
    total_variables: int = 0
    total_constraints: int = 0
    elapsed_ms: float = 0.0
    message: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Any) -> 'SolverResponse':
        """
        Parse a response body.

        Raises:
            SolverError: If the payload is not a valid response
        """
        if not isinstance(data, dict):
            raise SolverError(f"Unexpected solver payload: {type(data).__name__}")
        try:
            return cls(
                status=SolverStatus(data["status"]),
                assignments=dict(data.get("assignments") or {}),
                overflow=list(data.get("overflow") or []),
                chain_breaks=list(data.get("chainBreaks") or []),
                objective_value=float(data.get("objectiveValue") or 0),
                total_variables=int(data.get("totalVariables") or 0),
                total_constraints=int(data.get("totalConstraints") or 0),
                elapsed_ms=float(data.get("elapsedMs") or 0),
                message=data.get("message"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SolverError(f"Malformed solver response: {e}") from e

    @classmethod
    def error(cls, request: SolverRequest, message: str, **diagnostics) -> 'SolverResponse':
        """Error response that leaves every flight in overflow."""
        return cls(
            status=SolverStatus.ERROR,
            overflow=[str(f.key) for f in request.flights],
            message=message,
            **diagnostics
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "assignments": dict(self.assignments),
            "overflow": list(self.overflow),
            "chainBreaks": list(self.chain_breaks),
            "objectiveValue": self.objective_value,
            "totalVariables": self.total_variables,
            "totalConstraints": self.total_constraints,
            "elapsedMs": self.elapsed_ms,
            "message": self.message,
        }


def tat_minutes_by_type(
    flights: List[FlightLeg],
    aircraft: List[AssignableAircraft],
    config: EngineConfig
) -> Dict[str, int]:
    """Smallest directional TAT per type, overrides included."""
    types = sorted({f.aircraft_type for f in flights} | {ac.aircraft_type for ac in aircraft})
    return {
        t: min(
            config.tat_table.resolve(
                t, arr, dep, config.tat_overrides, use_minimum=config.use_minimum_tat
            )
            for arr in (True, False)
            for dep in (True, False)
        )
        for t in types
    }


def build_request(
    flights: List[FlightLeg],
    aircraft: List[AssignableAircraft],
    config: EngineConfig,
    mip_config: MIPConfig = MIP_PRESETS["normal"]
) -> SolverRequest:
    """Serialize an engine input for an exact solver."""
    active = [ac for ac in aircraft if ac.is_active]
    return SolverRequest(
        flights=list(flights),
        aircraft=active,
        tat_minutes=tat_minutes_by_type(flights, active, config),
        time_limit_seconds=mip_config.time_limit_seconds,
        mip_gap=mip_config.mip_gap,
        allow_family_substitution=config.allow_family_substitution,
        type_families=dict(config.type_families),
    )


def response_to_result(
    response: SolverResponse,
    request: SolverRequest,
    config: EngineConfig
) -> TailAssignmentResult:
    """
    Map a solver response onto the engine's result shape.

    Pins always win over the solver's answer; unknown flight ids are ignored.

    Raises:
        SolverError: If the response carries no usable solution
    """
    if not response.status.has_solution:
        raise SolverError(
            f"Solver returned {response.status.value}: {response.message or 'no solution'}"
        )

    index = request.flight_index()
    assignments: Dict[FlightKey, str] = {}
    for flight_id, registration in response.assignments.items():
        flight = index.get(flight_id)
        if flight is None:
            logger.warning(f"Solver assigned unknown flight {flight_id}; ignoring")
            continue
        assignments[flight.key] = registration

    for flight in request.flights:
        if flight.is_pinned and assignments.get(flight.key) != flight.pinned_registration:
            if flight.key in assignments:
                logger.warning(
                    f"Solver moved pinned flight {flight.key}; restoring {flight.pinned_registration}"
                )
            assignments[flight.key] = flight.pinned_registration

    pinned = [f for f in request.flights if f.is_pinned]
    return annotate_assignment(
        assignments,
        request.flights,
        request.aircraft,
        config,
        method="mip",
        override_conflicts=find_override_conflicts(pinned)
    )
