"""Tail assignment result model."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from models.flight import FlightKey, FlightLeg
from models.rules import RuleViolation


class RejectionReason(Enum):
    """Why a candidate aircraft could not take a flight."""
    HARD_RULE = "hard_rule"
    OVERLAP = "overlap"
    CHAIN_CONFLICT = "chain_conflict"


@dataclass(frozen=True)
class Rejection:
    """A candidate aircraft rejected for a flight."""
    registration: str
    aircraft_type: str
    reason: RejectionReason
    rule_violations: tuple = ()
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "registration": self.registration,
            "aircraft_type": self.aircraft_type,
            "reason": self.reason.value,
            "rule_violations": [v.to_dict() for v in self.rule_violations],
            "detail": self.detail,
        }


@dataclass(frozen=True)
class ChainBreak:
    """Adjacent legs on one tail whose stations do not connect."""
    key: FlightKey
    registration: str
    prev_arr: str
    next_dep: str

    def to_dict(self) -> dict:
        return {
            "flight": str(self.key),
            "registration": self.registration,
            "prev_arr": self.prev_arr,
            "next_dep": self.next_dep,
        }


@dataclass(frozen=True)
class FamilySubstitution:
    """A flight flown by a different type of the same family."""
    scheduled_type: str
    assigned_type: str
    family: str


@dataclass(frozen=True)
class OverrideConflict:
    """Two pinned legs that overlap on the same tail."""
    registration: str
    first: FlightKey
    second: FlightKey

    def to_dict(self) -> dict:
        return {
            "registration": self.registration,
            "first": str(self.first),
            "second": str(self.second),
        }


@dataclass
class AssignmentSummary:
    """Counts describing a result."""
    total_flights: int = 0
    assigned: int = 0
    overflowed: int = 0
    hard_rules_enforced: int = 0
    soft_rules_bent: int = 0
    total_penalty_cost: float = 0.0

    def to_dict(self) -> dict:
        return {
            "total_flights": self.total_flights,
            "assigned": self.assigned,
            "overflowed": self.overflowed,
            "hard_rules_enforced": self.hard_rules_enforced,
            "soft_rules_bent": self.soft_rules_bent,
            "total_penalty_cost": self.total_penalty_cost,
        }


@dataclass
class TailAssignmentResult:
    """
    Complete assignment of flight instances to tails.

    Every flight instance appears in exactly one of ``assignments`` or
    ``overflow``. Produced by the constructor, the refiner or a solver backend;
    consumers do not need to know which.
    """
    assignments: Dict[FlightKey, str] = field(default_factory=dict)
    overflow: List[FlightLeg] = field(default_factory=list)
    chain_breaks: List[ChainBreak] = field(default_factory=list)
    rule_violations: Dict[FlightKey, List[RuleViolation]] = field(default_factory=dict)
    rejections: Dict[FlightKey, List[Rejection]] = field(default_factory=dict)
    substitutions: Dict[FlightKey, FamilySubstitution] = field(default_factory=dict)
    override_conflicts: List[OverrideConflict] = field(default_factory=list)
    summary: AssignmentSummary = field(default_factory=AssignmentSummary)
    method: str = "minimize"
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def overflow_keys(self) -> List[FlightKey]:
        return [f.key for f in self.overflow]

    @property
    def overflow_by_type(self) -> Dict[str, List[FlightLeg]]:
        """Overflow pool keyed by scheduled aircraft type."""
        pool: Dict[str, List[FlightLeg]] = {}
        for flight in self.overflow:
            pool.setdefault(flight.aircraft_type, []).append(flight)
        return pool

    @property
    def total_penalty(self) -> float:
        return sum(
            v.penalty_cost
            for violations in self.rule_violations.values()
            for v in violations
            if not v.is_hard
        )

    def registration_for(self, key: FlightKey) -> Optional[str]:
        return self.assignments.get(key)

    def rotation(self, registration: str, flights: List[FlightLeg]) -> List[FlightLeg]:
        """Legs assigned to a tail, in chronological order."""
        legs = [f for f in flights if self.assignments.get(f.key) == registration]
        return sorted(legs, key=lambda f: (f.start, f.end))

    def rotations(self, flights: List[FlightLeg]) -> Dict[str, List[FlightLeg]]:
        """All tails' legs, each in chronological order."""
        by_reg: Dict[str, List[FlightLeg]] = {}
        for flight in flights:
            reg = self.assignments.get(flight.key)
            if reg is not None:
                by_reg.setdefault(reg, []).append(flight)
        for legs in by_reg.values():
            legs.sort(key=lambda f: (f.start, f.end))
        return by_reg

    def verify_partition(self, flights: List[FlightLeg]) -> Dict[str, bool]:
        """
        Verify the assignment/overflow partition.

        Returns dict of check_name -> satisfied
        """
        overflow = set(self.overflow_keys)
        assigned = set(self.assignments)
        keys = {f.key for f in flights}
        return {
            "disjoint": not (overflow & assigned),
            "complete": keys == (overflow | assigned),
            "pins_respected": all(
                self.assignments.get(f.key) == f.pinned_registration
                for f in flights if f.is_pinned
            ),
        }

    def refresh_summary(self) -> AssignmentSummary:
        """Recompute counts that derive from the maps."""
        soft = [
            v for violations in self.rule_violations.values()
            for v in violations if not v.is_hard
        ]
        self.summary.total_flights = len(self.assignments) + len(self.overflow)
        self.summary.assigned = len(self.assignments)
        self.summary.overflowed = len(self.overflow)
        self.summary.soft_rules_bent = len(soft)
        self.summary.total_penalty_cost = sum(v.penalty_cost for v in soft)
        return self.summary

    def to_dict(self) -> dict:
        """Serialize result to dictionary."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "method": self.method,
            "assignments": {
                str(key): reg for key, reg in sorted(self.assignments.items())
            },
            "overflow": {
                ac_type: [str(f.key) for f in legs]
                for ac_type, legs in self.overflow_by_type.items()
            },
            "chain_breaks": [cb.to_dict() for cb in self.chain_breaks],
            "rule_violations": {
                str(key): [v.to_dict() for v in violations]
                for key, violations in self.rule_violations.items()
            },
            "rejections": {
                str(key): [r.to_dict() for r in rejections]
                for key, rejections in self.rejections.items()
            },
            "substitutions": {
                str(key): {
                    "scheduled_type": sub.scheduled_type,
                    "assigned_type": sub.assigned_type,
                    "family": sub.family,
                }
                for key, sub in self.substitutions.items()
            },
            "override_conflicts": [c.to_dict() for c in self.override_conflicts],
            "summary": self.summary.to_dict(),
        }

    def print_summary(self, flights: List[FlightLeg]) -> None:
        """Print a formatted summary of the assignment."""
        print("\n" + "=" * 60)
        print(f"              TAIL ASSIGNMENT ({self.method.upper()})")
        print("=" * 60)
        print(f"Flights:    {self.summary.total_flights}")
        print(f"Assigned:   {self.summary.assigned}")
        print(f"Overflow:   {self.summary.overflowed}")
        print(f"Penalty:    {self.summary.total_penalty_cost:.0f}")
        print()

        for reg, legs in sorted(self.rotations(flights).items()):
            print(f"Tail {reg}:")
            for leg in legs:
                marker = " [pinned]" if leg.is_pinned else ""
                if leg.key in self.substitutions:
                    marker += f" [sub {self.substitutions[leg.key].assigned_type}]"
                print(f"  {leg!r}{marker}")
            print()

        if self.overflow:
            print("Overflow:")
            for ac_type, legs in sorted(self.overflow_by_type.items()):
                print(f"  {ac_type}: {', '.join(f.flight_number for f in legs)}")
            print()

        if self.chain_breaks:
            print("Chain breaks:")
            for cb in self.chain_breaks:
                print(f"  {cb.registration} {cb.key}: arrives {cb.prev_arr}, departs {cb.next_dep}")
            print()

        print("=" * 60)

    def __repr__(self) -> str:
        return (
            f"TailAssignmentResult(method={self.method}, "
            f"assigned={len(self.assignments)}, "
            f"overflow={len(self.overflow)})"
        )
