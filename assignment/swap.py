"""Feasibility check and application of flight-group swaps between two tails."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set, Tuple
import logging

from models import FlightLeg, FlightKey, AssignableAircraft, TailAssignmentResult, format_minutes
from assignment.config import EngineConfig
from assignment.conflicts import evaluate_gap, annotate_assignment

logger = logging.getLogger(__name__)


class SwapIssue(Enum):
    CHAIN_BREAK = "chain-break"
    TIME_OVERLAP = "time-overlap"
    TAT_INSUFFICIENT = "tat-insufficient"
    AC_TYPE_MISMATCH = "ac-type-mismatch"
    PINNED_FLIGHT = "pinned-flight"


class Severity(Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class SwapWarning:
    """
    One finding about the post-swap state.

    Attributes:
        side: "A" for findings on tail B, where group A lands; "B" for tail A
        registration: Tail the finding applies to
        issue: Kind of problem
        severity: ERROR blocks the swap, WARNING is informational
        message: Human-readable description
    """
    side: str
    registration: str
    issue: SwapIssue
    severity: Severity
    message: str

    def to_dict(self) -> dict:
        return {
            "side": self.side,
            "registration": self.registration,
            "type": self.issue.value,
            "severity": self.severity.value,
            "message": self.message,
        }


@dataclass
class SwapValidation:
    """Outcome of validating a swap, with both post-swap rotations."""
    warnings: List[SwapWarning] = field(default_factory=list)
    rotation_a: List[FlightLeg] = field(default_factory=list)
    rotation_b: List[FlightLeg] = field(default_factory=list)

    @property
    def feasible(self) -> bool:
        return not self.errors

    @property
    def errors(self) -> List[SwapWarning]:
        return [w for w in self.warnings if w.severity == Severity.ERROR]

    def to_dict(self) -> dict:
        return {
            "feasible": self.feasible,
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _check_membership(group: Sequence[FlightLeg], rotation: Sequence[FlightLeg], registration: str) -> None:
    on_tail = {leg.key for leg in rotation}
    missing = [leg.key for leg in group if leg.key not in on_tail]
    if missing:
        raise ValueError(
            f"Flights {', '.join(str(k) for k in missing)} are not on {registration}"
        )


def post_swap_rotation(
    rotation: Sequence[FlightLeg],
    outgoing: Sequence[FlightLeg],
    incoming: Sequence[FlightLeg]
) -> List[FlightLeg]:
    """A tail's legs after removing ``outgoing`` and adding ``incoming``."""
    leaving = {leg.key for leg in outgoing}
    remaining = [leg for leg in rotation if leg.key not in leaving]
    return sorted(remaining + list(incoming), key=lambda f: (f.start, f.end))


def _adjacent_pairs(rotation: Sequence[FlightLeg]) -> Set[Tuple[FlightKey, FlightKey]]:
    return {(prev.key, nxt.key) for prev, nxt in zip(rotation, rotation[1:])}


def _validate_side(
    rotation: List[FlightLeg],
    incoming: Sequence[FlightLeg],
    existing_pairs: Set[Tuple[FlightKey, FlightKey]],
    side: str,
    registration: str,
    aircraft_type: Optional[str],
    config: EngineConfig,
    warnings: List[SwapWarning]
) -> None:
    """
    Check a tail's post-swap rotation.

    Every incoming leg is checked for overlaps against the whole rotation.
    Every adjacent pair that did not exist before the swap is checked for
    station continuity and TAT; this covers the legs that close up around
    an outgoing group as well as the boundaries of the incoming one.
    """
    incoming_keys = {leg.key for leg in incoming}

    for leg in rotation:
        if leg.key not in incoming_keys:
            continue
        # Overlaps with any remaining leg, not just the neighbours
        for other in rotation:
            if other.key == leg.key or other.key in incoming_keys:
                continue
            if other.overlaps(leg):
                warnings.append(SwapWarning(
                    side, registration, SwapIssue.TIME_OVERLAP, Severity.ERROR,
                    f"Time overlap on {registration}: {leg.flight_number} "
                    f"({format_minutes(leg.std_minutes)}-{format_minutes(leg.sta_minutes)}) "
                    f"overlaps {other.flight_number}"
                ))

    for prev, nxt in zip(rotation, rotation[1:]):
        if (prev.key, nxt.key) in existing_pairs:
            continue
        if prev.overlaps(nxt) or prev.same_route_as(nxt):
            continue

        if prev.arr_station != nxt.dep_station:
            warnings.append(SwapWarning(
                side, registration, SwapIssue.CHAIN_BREAK, Severity.ERROR,
                f"Chain break on {registration}: {prev.flight_number} arrives "
                f"{prev.arr_station}, next {nxt.flight_number} departs {nxt.dep_station}"
            ))
            continue

        check = evaluate_gap(prev, nxt, config, aircraft_type)
        if check is not None and not check.ok:
            warnings.append(SwapWarning(
                side, registration, SwapIssue.TAT_INSUFFICIENT, Severity.WARNING,
                f"Tight turnaround on {registration}: {check.gap_minutes}min gap "
                f"(min {check.min_tat}min)"
            ))


def validate_swap(
    group_a: Sequence[FlightLeg],
    registration_a: str,
    group_b: Sequence[FlightLeg],
    registration_b: str,
    rotation_a: Sequence[FlightLeg],
    rotation_b: Sequence[FlightLeg],
    config: EngineConfig,
    type_a: Optional[str] = None,
    type_b: Optional[str] = None,
    pin: bool = False
) -> SwapValidation:
    """
    Check whether group A (on tail A) and group B (on tail B) can trade tails.

    Overlaps and station-chain breaks created by the swap are blocking;
    turnarounds under the minimum TAT are reported as warnings only.
    Either group may be empty, which makes the swap a one-way move.
    Pinned legs may only move when the swap re-pins them.

    Args:
        group_a: Legs currently on ``registration_a`` that move to B
        registration_a: Tail A
        group_b: Legs currently on ``registration_b`` that move to A
        registration_b: Tail B
        rotation_a: All legs currently on tail A
        rotation_b: All legs currently on tail B
        config: Engine configuration (TAT table, families)
        type_a: Aircraft type of tail A
        type_b: Aircraft type of tail B
        pin: The swap will be saved as manual overrides

    Returns:
        SwapValidation with findings and both post-swap rotations

    Raises:
        ValueError: If the tails are the same or a group's legs are not on its tail
    """
    if registration_a == registration_b:
        raise ValueError(f"Cannot swap {registration_a} with itself")
    _check_membership(group_a, rotation_a, registration_a)
    _check_membership(group_b, rotation_b, registration_b)

    validation = SwapValidation(
        rotation_a=post_swap_rotation(rotation_a, group_a, group_b),
        rotation_b=post_swap_rotation(rotation_b, group_b, group_a),
    )
    warnings = validation.warnings

    if not pin:
        for side, group, registration in (("B", group_a, registration_a), ("A", group_b, registration_b)):
            pinned = [leg.flight_number for leg in group if leg.is_pinned]
            if pinned:
                warnings.append(SwapWarning(
                    side, registration, SwapIssue.PINNED_FLIGHT, Severity.ERROR,
                    f"Pinned flights {', '.join(pinned)} cannot leave {registration} "
                    f"unless the swap is pinned"
                ))

    if type_a and type_b and type_a != type_b:
        severity = Severity.WARNING if config.same_family(type_a, type_b) else Severity.ERROR
        qualifier = "same family" if severity == Severity.WARNING else "different type"
        warnings.append(SwapWarning(
            "A", registration_b, SwapIssue.AC_TYPE_MISMATCH, severity,
            f"{type_a} flights moving to {type_b} aircraft ({qualifier})"
        ))

    existing = _adjacent_pairs(rotation_a) | _adjacent_pairs(rotation_b)
    _validate_side(validation.rotation_b, group_a, existing, "A", registration_b, type_b, config, warnings)
    _validate_side(validation.rotation_a, group_b, existing, "B", registration_a, type_a, config, warnings)

    if not warnings:
        warnings.append(SwapWarning(
            "A", registration_b, SwapIssue.CHAIN_BREAK, Severity.OK,
            "Swap looks clean, no conflicts detected"
        ))

    logger.debug(
        f"Swap {registration_a}<->{registration_b}: "
        f"{len(validation.errors)} errors, {len(warnings)} findings"
    )
    return validation


def validate_result_swap(
    result: TailAssignmentResult,
    group_a: Sequence[FlightLeg],
    registration_a: str,
    group_b: Sequence[FlightLeg],
    registration_b: str,
    flights: List[FlightLeg],
    aircraft: List[AssignableAircraft],
    config: EngineConfig,
    pin: bool = False
) -> SwapValidation:
    """Validate a swap against the rotations of an existing result."""
    types = {ac.registration: ac.aircraft_type for ac in aircraft}
    return validate_swap(
        group_a, registration_a, group_b, registration_b,
        result.rotation(registration_a, flights),
        result.rotation(registration_b, flights),
        config,
        type_a=types.get(registration_a),
        type_b=types.get(registration_b),
        pin=pin
    )


def apply_swap(
    result: TailAssignmentResult,
    group_a: Sequence[FlightLeg],
    registration_a: str,
    group_b: Sequence[FlightLeg],
    registration_b: str,
    flights: List[FlightLeg],
    aircraft: List[AssignableAircraft],
    config: EngineConfig,
    pin: bool = False
) -> TailAssignmentResult:
    """
    Apply a swap to a copy of ``result``; both groups move or nothing does.

    Soft violations, substitutions, chain breaks and the summary are
    recomputed for the new rotations.

    Raises:
        ValueError: If the swap is not feasible
    """
    validation = validate_result_swap(
        result, group_a, registration_a, group_b, registration_b,
        flights, aircraft, config, pin=pin
    )
    if not validation.feasible:
        reasons = "; ".join(w.message for w in validation.errors)
        raise ValueError(f"Swap {registration_a}<->{registration_b} is not feasible: {reasons}")

    assignments: Dict[FlightKey, str] = dict(result.assignments)
    for leg in group_a:
        assignments[leg.key] = registration_b
    for leg in group_b:
        assignments[leg.key] = registration_a

    swapped = annotate_assignment(
        assignments,
        flights,
        aircraft,
        config,
        method=result.method,
        rejections=result.rejections,
        override_conflicts=result.override_conflicts
    )
    logger.info(
        f"Swapped {len(group_a)} legs {registration_a}->{registration_b} "
        f"and {len(group_b)} legs {registration_b}->{registration_a}"
    )
    return swapped
