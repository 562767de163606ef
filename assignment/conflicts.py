"""Ground-time and station-continuity analysis between adjacent legs."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional
import logging

from models import (
    FlightLeg,
    FlightKey,
    AssignableAircraft,
    ChainBreak,
    OverrideConflict,
    FamilySubstitution,
    TailAssignmentResult,
    AssignmentSummary,
    Rejection,
    RejectionReason,
)
from assignment.config import EngineConfig
from assignment.rules import RotationContext, evaluate_rules

logger = logging.getLogger(__name__)


class TatStatus(Enum):
    """Display classification of a turnaround."""
    OK = "ok"
    TIGHT = "tight"
    VIOLATED = "violated"


@dataclass(frozen=True)
class TatCheck:
    """Ground time between two same-tail legs."""
    gap_minutes: int
    min_tat: int
    ok: bool


@dataclass(frozen=True)
class LegConflict:
    """Annotation for one pair of consecutive legs on a tail."""
    registration: str
    prev: FlightKey
    next: FlightKey
    overlap: bool
    chain_break: bool
    tat: Optional[TatCheck]
    status: Optional[TatStatus]

    @property
    def has_problem(self) -> bool:
        return self.overlap or self.chain_break or self.status == TatStatus.VIOLATED


def evaluate_gap(
    leg_a: FlightLeg,
    leg_b: FlightLeg,
    config: EngineConfig,
    aircraft_type: Optional[str] = None
) -> Optional[TatCheck]:
    """
    Evaluate the turnaround from ``leg_a`` into ``leg_b``.

    Args:
        leg_a: Arriving leg
        leg_b: Next departing leg on the same tail
        config: Engine configuration (TAT table and overrides)
        aircraft_type: Type of the tail; defaults to ``leg_a``'s scheduled type

    Returns:
        TatCheck, or None when the stations do not connect or the legs overlap
    """
    if leg_a.arr_station != leg_b.dep_station:
        return None

    gap = leg_b.start - leg_a.end
    if gap < 0:
        return None

    min_tat = config.min_tat(aircraft_type or leg_a.aircraft_type, leg_a, leg_b)
    return TatCheck(gap_minutes=gap, min_tat=min_tat, ok=min_tat == 0 or gap >= min_tat)


def classify_gap(check: TatCheck, buffer_minutes: int) -> TatStatus:
    """Classify a turnaround for display; the buffer never affects feasibility."""
    if not check.ok:
        return TatStatus.VIOLATED
    if check.min_tat > 0 and check.gap_minutes > 0 and check.gap_minutes < check.min_tat + buffer_minutes:
        return TatStatus.TIGHT
    return TatStatus.OK


def annotate_rotation(
    registration: str,
    legs: List[FlightLeg],
    config: EngineConfig,
    aircraft_type: Optional[str] = None
) -> List[LegConflict]:
    """
    Annotate every consecutive pair of legs on a tail.

    Legs may be given in any order; they are sorted chronologically.
    """
    ordered = sorted(legs, key=lambda f: (f.start, f.end))
    annotations: List[LegConflict] = []

    for prev, nxt in zip(ordered, ordered[1:]):
        overlap = prev.overlaps(nxt)
        chain_break = prev.arr_station != nxt.dep_station
        check = None if overlap else evaluate_gap(prev, nxt, config, aircraft_type)
        status = classify_gap(check, config.tight_buffer_minutes) if check else None
        annotations.append(LegConflict(
            registration=registration,
            prev=prev.key,
            next=nxt.key,
            overlap=overlap,
            chain_break=chain_break,
            tat=check,
            status=status
        ))

    return annotations


def find_chain_breaks(
    assignments: Mapping[FlightKey, str],
    flights: Iterable[FlightLeg]
) -> List[ChainBreak]:
    """Every adjacent same-tail pair whose stations do not connect."""
    by_reg: Dict[str, List[FlightLeg]] = {}
    for flight in flights:
        reg = assignments.get(flight.key)
        if reg is not None:
            by_reg.setdefault(reg, []).append(flight)

    breaks: List[ChainBreak] = []
    for reg in sorted(by_reg):
        legs = sorted(by_reg[reg], key=lambda f: (f.start, f.end))
        for prev, nxt in zip(legs, legs[1:]):
            if prev.arr_station != nxt.dep_station:
                breaks.append(ChainBreak(
                    key=nxt.key,
                    registration=reg,
                    prev_arr=prev.arr_station,
                    next_dep=nxt.dep_station
                ))
    return breaks


def find_override_conflicts(flights: Iterable[FlightLeg]) -> List[OverrideConflict]:
    """Pinned legs that overlap another pinned leg on the same tail."""
    pinned: Dict[str, List[FlightLeg]] = {}
    for flight in flights:
        if flight.pinned_registration:
            pinned.setdefault(flight.pinned_registration, []).append(flight)

    conflicts: List[OverrideConflict] = []
    for reg in sorted(pinned):
        legs = sorted(pinned[reg], key=lambda f: (f.start, f.end))
        for i, first in enumerate(legs):
            for second in legs[i + 1:]:
                if second.start >= first.end:
                    break
                conflicts.append(OverrideConflict(
                    registration=reg,
                    first=first.key,
                    second=second.key
                ))
                logger.warning(
                    f"Pinned legs {first.key} and {second.key} overlap on {reg}"
                )
    return conflicts


def annotate_assignment(
    assignments: Mapping[FlightKey, str],
    flights: List[FlightLeg],
    aircraft: List[AssignableAircraft],
    config: EngineConfig,
    method: str,
    rejections: Optional[Dict[FlightKey, List[Rejection]]] = None,
    override_conflicts: Optional[List[OverrideConflict]] = None
) -> TailAssignmentResult:
    """
    Build a full result from a bare assignment map.

    Flights missing from ``assignments`` become overflow. Soft violations,
    substitutions and chain breaks are recomputed from the final rotations,
    so results from any engine carry the same annotations.
    """
    keys = {f.key for f in flights}
    by_reg = {ac.registration: ac for ac in aircraft}
    result = TailAssignmentResult(
        assignments={k: reg for k, reg in assignments.items() if k in keys},
        rejections=dict(rejections or {}),
        override_conflicts=list(override_conflicts or []),
        method=method,
    )
    result.overflow = [f for f in flights if f.key not in result.assignments]

    for reg, legs in result.rotations(flights).items():
        ac = by_reg.get(reg)
        if ac is None:
            continue
        block_by_date: Dict = {}
        for i, leg in enumerate(legs):
            context = RotationContext(
                previous=legs[i - 1] if i > 0 else None,
                legs_today=sum(1 for other in legs[:i] if other.date == leg.date),
                block_minutes_today=block_by_date.get(leg.date, 0)
            )
            block_by_date[leg.date] = block_by_date.get(leg.date, 0) + leg.block_minutes
            if ac.aircraft_type != leg.aircraft_type:
                result.substitutions[leg.key] = FamilySubstitution(
                    scheduled_type=leg.aircraft_type,
                    assigned_type=ac.aircraft_type,
                    family=config.family_of(leg.aircraft_type) or ""
                )
            if leg.is_pinned:
                continue
            soft = evaluate_rules(
                leg, ac, config.rules, context, config.type_families
            ).soft_violations
            if soft:
                result.rule_violations[leg.key] = soft

    result.chain_breaks = find_chain_breaks(result.assignments, flights)
    result.summary = AssignmentSummary(
        hard_rules_enforced=sum(
            1 for entries in result.rejections.values()
            for r in entries if r.reason == RejectionReason.HARD_RULE
        )
    )
    result.refresh_summary()
    return result
