"""Operator-defined scheduling rule model."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_PENALTY_COST = 3000.0


class Enforcement(Enum):
    """How a triggered rule is applied."""
    HARD = "hard"
    SOFT = "soft"


class RuleAction(Enum):
    """What the rule says about matching flights."""
    MUST_NOT_FLY = "must_not_fly"
    SHOULD_AVOID = "should_avoid"
    CAN_ONLY_FLY = "can_only_fly"
    MUST_FLY = "must_fly"
    SHOULD_FLY = "should_fly"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")

    @property
    def is_preference(self) -> bool:
        """Positive rules produce a bonus, never a violation."""
        return self in (RuleAction.MUST_FLY, RuleAction.SHOULD_FLY)


class ScopeType(Enum):
    """Which aircraft a rule applies to."""
    ALL = "all"
    TYPE = "type"
    FAMILY = "family"
    REGISTRATION = "registration"


class CriteriaType(Enum):
    """Which flights a rule matches."""
    AIRPORTS = "airports"
    ROUTES = "routes"
    INTERNATIONAL = "international"
    DOMESTIC = "domestic"
    SERVICE_TYPE = "service_type"
    DEPARTURE_TIME = "departure_time"
    BLOCK_TIME = "block_time"
    OVERNIGHT = "overnight"
    DAY_OF_WEEK = "day_of_week"
    DAILY_BLOCK_TIME = "daily_block_time"


@dataclass(frozen=True)
class ScheduleRule:
    """
    A predicate over (flight, candidate aircraft, rotation context).

    Attributes:
        id: Rule identifier
        action: Rule action
        enforcement: Hard (eliminates the candidate) or soft (adds penalty)
        scope_type: Which aircraft the rule applies to
        criteria_type: Which flights the rule matches
        name: Human-readable rule name
        scope_values: Types, families or registrations in scope
        criteria_values: Criteria parameters (e.g. {"airports": [...], "direction": "to"})
        penalty_cost: Cost of bending a soft rule (None = default cost)
        priority: Evaluation order (lower first)
        is_active: Inactive rules are skipped
        valid_from: First date the rule applies
        valid_to: Last date the rule applies
        message_template: Optional format string; fields are
            {name}, {registration}, {flight_number}, {action}, {enforcement}
    """
    id: str
    action: RuleAction
    enforcement: Enforcement
    scope_type: ScopeType = ScopeType.ALL
    criteria_type: CriteriaType = CriteriaType.AIRPORTS
    name: Optional[str] = None
    scope_values: Tuple[str, ...] = ()
    criteria_values: Dict[str, Any] = field(default_factory=dict, hash=False)
    penalty_cost: Optional[float] = DEFAULT_PENALTY_COST
    priority: int = 100
    is_active: bool = True
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    message_template: Optional[str] = None

    @property
    def is_hard(self) -> bool:
        return self.enforcement == Enforcement.HARD

    @property
    def soft_penalty(self) -> float:
        """Penalty for bending the rule; an explicit 0 stays 0."""
        if self.penalty_cost is None:
            return DEFAULT_PENALTY_COST
        return self.penalty_cost

    def applies_on(self, day: date) -> bool:
        """Check the rule's validity period."""
        if self.valid_from and day < self.valid_from:
            return False
        if self.valid_to and day > self.valid_to:
            return False
        return True


@dataclass(frozen=True)
class RuleViolation:
    """A rule triggered by a (flight, aircraft) pairing."""
    rule_id: str
    rule_name: Optional[str]
    enforcement: Enforcement
    penalty_cost: float
    message: str

    @property
    def is_hard(self) -> bool:
        return self.enforcement == Enforcement.HARD

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "enforcement": self.enforcement.value,
            "penalty_cost": self.penalty_cost,
            "message": self.message,
        }


@dataclass
class EvalResult:
    """Outcome of evaluating all rules for one pairing."""
    violations: List[RuleViolation] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        """False when any hard rule was violated."""
        return not any(v.is_hard for v in self.violations)

    @property
    def hard_violations(self) -> List[RuleViolation]:
        return [v for v in self.violations if v.is_hard]

    @property
    def soft_violations(self) -> List[RuleViolation]:
        return [v for v in self.violations if not v.is_hard]

    @property
    def total_penalty(self) -> float:
        """Sum of soft penalty costs."""
        return sum(v.penalty_cost for v in self.soft_violations)
