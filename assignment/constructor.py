"""Greedy / balanced constructive tail assignment."""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple
import logging
import time

from models import (
    FlightLeg,
    FlightKey,
    AssignableAircraft,
    TailAssignmentResult,
    AssignmentSummary,
    Rejection,
    RejectionReason,
    FamilySubstitution,
    RuleViolation,
)
from assignment.config import EngineConfig, AssignmentMethod
from assignment.conflicts import evaluate_gap, find_chain_breaks, find_override_conflicts
from assignment.rules import RotationContext, evaluate_rules, evaluate_bonus

logger = logging.getLogger(__name__)


@dataclass
class AircraftState:
    """Timeline of one tail while the assignment is being built."""
    aircraft: AssignableAircraft
    legs: List[FlightLeg] = field(default_factory=list)
    block_minutes: int = 0
    legs_by_date: Dict[date, int] = field(default_factory=dict)
    block_by_date: Dict[date, int] = field(default_factory=dict)

    @property
    def registration(self) -> str:
        return self.aircraft.registration

    def add(self, flight: FlightLeg) -> None:
        """Reserve the tail for a flight."""
        self.legs.append(flight)
        self.legs.sort(key=lambda f: (f.start, f.end))
        self.block_minutes += flight.block_minutes
        self.legs_by_date[flight.date] = self.legs_by_date.get(flight.date, 0) + 1
        self.block_by_date[flight.date] = (
            self.block_by_date.get(flight.date, 0) + flight.block_minutes
        )

    def overlapping(self, flight: FlightLeg) -> Optional[FlightLeg]:
        """First leg already on the tail that overlaps the flight."""
        for leg in self.legs:
            if leg.overlaps(flight):
                return leg
        return None

    def previous(self, flight: FlightLeg) -> Optional[FlightLeg]:
        """Most recent leg ending at or before the flight's departure."""
        best = None
        for leg in self.legs:
            if leg.end <= flight.start and (best is None or leg.end > best.end):
                best = leg
        return best

    def following(self, flight: FlightLeg) -> Optional[FlightLeg]:
        """Earliest leg starting at or after the flight's arrival."""
        best = None
        for leg in self.legs:
            if leg.start >= flight.end and (best is None or leg.start < best.start):
                best = leg
        return best

    def context(self, flight: FlightLeg) -> RotationContext:
        return RotationContext(
            previous=self.previous(flight),
            legs_today=self.legs_by_date.get(flight.date, 0),
            block_minutes_today=self.block_by_date.get(flight.date, 0),
            block_minutes_total=self.block_minutes
        )


@dataclass
class Candidate:
    """A feasible tail for one flight."""
    state: AircraftState
    violations: List[RuleViolation]
    penalty: float
    bonus: float
    gap: float
    substitution: bool
    keeps_route: bool = False

    def rank(self, flight: FlightLeg, method: AssignmentMethod) -> Tuple:
        """Sort key; lower is better. The tail already flying the route comes first."""
        if method == AssignmentMethod.BALANCE:
            objective = self.state.block_minutes
        else:
            objective = -self.state.legs_by_date.get(flight.date, 0)
        home_mismatch = (
            self.state.aircraft.home_base is not None
            and self.gap == float("inf")
            and self.state.aircraft.home_base != flight.dep_station
        )
        return (
            not self.keeps_route,
            self.substitution,
            objective,
            self.gap,
            self.penalty - self.bonus,
            home_mismatch,
            self.state.registration,
        )


def chronological(flights: List[FlightLeg]) -> List[FlightLeg]:
    """Flights in ascending (date, departure) order."""
    return sorted(flights, key=lambda f: (f.date, f.std_minutes, f.flight_id))


def check_chain(
    state: AircraftState,
    flight: FlightLeg,
    config: EngineConfig
) -> Optional[str]:
    """
    Check station continuity and TAT against the tail's neighbouring legs.

    Consecutive legs of the same route are exempt.

    Returns:
        None when the flight fits the chain, else a description of the conflict
    """
    ac_type = state.aircraft.aircraft_type

    prev = state.previous(flight)
    if prev is not None and not prev.same_route_as(flight):
        check = evaluate_gap(prev, flight, config, ac_type)
        if check is None:
            return f"arrives {prev.arr_station} before departure from {flight.dep_station}"
        if not check.ok:
            return f"{check.gap_minutes}min gap after {prev.flight_number} < {check.min_tat}min TAT"

    nxt = state.following(flight)
    if nxt is not None and not flight.same_route_as(nxt):
        check = evaluate_gap(flight, nxt, config, ac_type)
        if check is None:
            return f"arrives {flight.arr_station} but {nxt.flight_number} departs {nxt.dep_station}"
        if not check.ok:
            return f"{check.gap_minutes}min gap before {nxt.flight_number} < {check.min_tat}min TAT"

    return None


def gap_to_previous(state: AircraftState, flight: FlightLeg) -> float:
    prev = state.previous(flight)
    if prev is None:
        return float("inf")
    return float(flight.start - prev.end)


class GreedyConstructor:
    """
    Single-sweep constructive heuristic.

    Flights are processed chronologically per aircraft group; each one is
    placed on the best feasible tail for the configured objective, or sent
    to the overflow pool. Pinned flights are reserved first and never moved.
    Later legs of a route prefer the tail that took its first leg that day.
    """

    def __init__(
        self,
        flights: List[FlightLeg],
        aircraft: List[AssignableAircraft],
        config: EngineConfig
    ):
        self.flights = list(flights)
        self.aircraft = [ac for ac in aircraft if ac.is_active]
        self.config = config

        # (route, date) -> tail that took the route's first leg
        self.route_tails: Dict[Tuple, str] = {}
        self.states: Dict[str, AircraftState] = {
            ac.registration: AircraftState(ac) for ac in self.aircraft
        }

    def run(self) -> TailAssignmentResult:
        """
        Build one complete assignment.

        Returns:
            TailAssignmentResult for every flight instance
        """
        start_time = time.time()
        method = self.config.method
        result = TailAssignmentResult(method=method.value)

        pinned = [f for f in self.flights if f.is_pinned]
        free = [f for f in self.flights if not f.is_pinned]

        for flight in chronological(pinned):
            self._reserve_pinned(flight, result)

        result.override_conflicts = find_override_conflicts(pinned)

        for group, group_flights in self._group(free).items():
            logger.debug(f"Assigning {len(group_flights)} flights in group {group}")
            for flight in group_flights:
                self._assign(flight, result)

        result.chain_breaks = find_chain_breaks(result.assignments, self.flights)
        result.summary = AssignmentSummary(
            hard_rules_enforced=sum(
                1 for rejections in result.rejections.values()
                for r in rejections if r.reason == RejectionReason.HARD_RULE
            )
        )
        result.refresh_summary()

        logger.info(
            f"Constructed {method.value} assignment: "
            f"{result.summary.assigned}/{result.summary.total_flights} assigned, "
            f"{result.summary.overflowed} overflow, "
            f"{len(result.chain_breaks)} chain breaks "
            f"in {(time.time() - start_time) * 1000:.0f} ms"
        )
        return result

    def _group(self, flights: List[FlightLeg]) -> Dict[str, List[FlightLeg]]:
        """Group flights by the tails they compete for, each chronological."""
        groups: Dict[str, List[FlightLeg]] = {}
        for flight in chronological(flights):
            groups.setdefault(self.config.group_key(flight.aircraft_type), []).append(flight)
        return dict(sorted(groups.items()))

    def _reserve_pinned(self, flight: FlightLeg, result: TailAssignmentResult) -> None:
        reg = flight.pinned_registration
        result.assignments[flight.key] = reg
        if flight.route_id is not None:
            self.route_tails.setdefault(flight.rotation_key, reg)

        state = self.states.get(reg)
        if state is None:
            logger.warning(
                f"Flight {flight.key} pinned to {reg}, which is not an active tail"
            )
            return
        state.add(flight)

        if state.aircraft.aircraft_type != flight.aircraft_type:
            self._mark_substitution(flight, state.aircraft, result)

    def _assign(self, flight: FlightLeg, result: TailAssignmentResult) -> None:
        candidates: List[Candidate] = []
        rejections: List[Rejection] = []

        for state in self.states.values():
            ac = state.aircraft
            if not self.config.can_operate(flight.aircraft_type, ac.aircraft_type):
                continue

            clash = state.overlapping(flight)
            if clash is not None:
                rejections.append(Rejection(
                    registration=ac.registration,
                    aircraft_type=ac.aircraft_type,
                    reason=RejectionReason.OVERLAP,
                    detail=f"overlaps {clash.flight_number} on {clash.date.isoformat()}"
                ))
                continue

            conflict = check_chain(state, flight, self.config)
            if conflict is not None:
                rejections.append(Rejection(
                    registration=ac.registration,
                    aircraft_type=ac.aircraft_type,
                    reason=RejectionReason.CHAIN_CONFLICT,
                    detail=conflict
                ))
                continue

            context = state.context(flight)
            evaluation = evaluate_rules(
                flight, ac, self.config.rules, context, self.config.type_families
            )
            if not evaluation.allowed:
                rejections.append(Rejection(
                    registration=ac.registration,
                    aircraft_type=ac.aircraft_type,
                    reason=RejectionReason.HARD_RULE,
                    rule_violations=tuple(evaluation.hard_violations),
                    detail="; ".join(v.message for v in evaluation.hard_violations)
                ))
                continue

            candidates.append(Candidate(
                state=state,
                violations=evaluation.soft_violations,
                penalty=evaluation.total_penalty,
                bonus=evaluate_bonus(
                    flight, ac, self.config.rules, context, self.config.type_families
                ),
                gap=gap_to_previous(state, flight),
                substitution=ac.aircraft_type != flight.aircraft_type,
                keeps_route=self.route_tails.get(flight.rotation_key) == ac.registration
            ))

        if rejections:
            result.rejections[flight.key] = rejections

        if not candidates:
            logger.debug(f"No feasible tail for {flight.key}; overflow {flight.aircraft_type}")
            result.overflow.append(flight)
            return

        best = min(candidates, key=lambda c: c.rank(flight, self.config.method))
        best.state.add(flight)
        result.assignments[flight.key] = best.state.registration
        if flight.route_id is not None:
            self.route_tails.setdefault(flight.rotation_key, best.state.registration)
        if best.violations:
            result.rule_violations[flight.key] = best.violations
        if best.substitution:
            self._mark_substitution(flight, best.state.aircraft, result)

    def _mark_substitution(
        self,
        flight: FlightLeg,
        aircraft: AssignableAircraft,
        result: TailAssignmentResult
    ) -> None:
        result.substitutions[flight.key] = FamilySubstitution(
            scheduled_type=flight.aircraft_type,
            assigned_type=aircraft.aircraft_type,
            family=self.config.family_of(flight.aircraft_type) or ""
        )


def construct_assignment(
    flights: List[FlightLeg],
    aircraft: List[AssignableAircraft],
    config: EngineConfig
) -> TailAssignmentResult:
    """Run the constructor once with the given configuration."""
    return GreedyConstructor(flights, aircraft, config).run()
