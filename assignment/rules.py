"""Schedule rule evaluation for (flight, aircraft) pairings."""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from models import (
    FlightLeg,
    AssignableAircraft,
    ScheduleRule,
    RuleAction,
    ScopeType,
    CriteriaType,
    RuleViolation,
    EvalResult,
    parse_hhmm,
)

MUST_FLY_BONUS = 50000.0

_COMPARATORS = {
    "gt": lambda value, limit: value > limit,
    "lt": lambda value, limit: value < limit,
    "gte": lambda value, limit: value >= limit,
    "lte": lambda value, limit: value <= limit,
    "eq": lambda value, limit: value == limit,
}


@dataclass(frozen=True)
class RotationContext:
    """
    What the candidate tail already flies around this flight.

    Attributes:
        previous: Latest leg on the tail ending at or before this flight
        legs_today: Legs already on the tail on this flight's date
        block_minutes_today: Block minutes already on the tail on this date
        block_minutes_total: Block minutes already on the tail over the horizon
    """
    previous: Optional[FlightLeg] = None
    legs_today: int = 0
    block_minutes_today: int = 0
    block_minutes_total: int = 0


EMPTY_CONTEXT = RotationContext()


def _compare(value: float, criteria: Dict[str, Any]) -> bool:
    comparator = _COMPARATORS.get(criteria.get("operator", "gt"))
    if comparator is None:
        return False
    return comparator(value, criteria.get("minutes", 0))


def matches_scope(
    aircraft: AssignableAircraft,
    rule: ScheduleRule,
    family: Optional[str] = None
) -> bool:
    """Check if the aircraft is in the rule's scope."""
    if rule.scope_type == ScopeType.ALL:
        return True
    if rule.scope_type == ScopeType.TYPE:
        return aircraft.aircraft_type in rule.scope_values
    if rule.scope_type == ScopeType.FAMILY:
        return family is not None and family in rule.scope_values
    if rule.scope_type == ScopeType.REGISTRATION:
        return aircraft.registration in rule.scope_values
    return False


def matches_criteria(
    flight: FlightLeg,
    rule: ScheduleRule,
    context: RotationContext = EMPTY_CONTEXT
) -> bool:
    """Check if the flight matches the rule's criteria."""
    cv = rule.criteria_values or {}
    criteria = rule.criteria_type

    if criteria == CriteriaType.AIRPORTS:
        airports = cv.get("airports", [])
        direction = cv.get("direction", "any")
        if direction == "to":
            return flight.arr_station in airports
        if direction == "from":
            return flight.dep_station in airports
        return flight.dep_station in airports or flight.arr_station in airports

    if criteria == CriteriaType.ROUTES:
        return f"{flight.dep_station}-{flight.arr_station}" in cv.get("routes", [])

    if criteria == CriteriaType.INTERNATIONAL:
        return not flight.domestic

    if criteria == CriteriaType.DOMESTIC:
        return flight.domestic

    if criteria == CriteriaType.SERVICE_TYPE:
        return flight.service_type in cv.get("types", [])

    if criteria == CriteriaType.DEPARTURE_TIME:
        window_from = parse_hhmm(cv.get("from", "00:00"))
        window_to = parse_hhmm(cv.get("to", "23:59"))
        std = flight.std_minutes % 1440
        if window_from <= window_to:
            return window_from <= std <= window_to
        # Window wraps midnight
        return std >= window_from or std <= window_to

    if criteria == CriteriaType.BLOCK_TIME:
        return _compare(flight.block_minutes, cv)

    if criteria == CriteriaType.OVERNIGHT:
        return flight.is_overnight

    if criteria == CriteriaType.DAY_OF_WEEK:
        return flight.date.isoweekday() in cv.get("days", [])

    if criteria == CriteriaType.DAILY_BLOCK_TIME:
        return _compare(context.block_minutes_today + flight.block_minutes, cv)

    return False


def is_violated(action: RuleAction, flight_matches: bool) -> bool:
    """Map a rule action and criteria match onto a violation."""
    if action in (RuleAction.MUST_NOT_FLY, RuleAction.SHOULD_AVOID):
        return flight_matches
    if action == RuleAction.CAN_ONLY_FLY:
        return not flight_matches
    # must_fly / should_fly are handled by the bonus
    return False


def build_message(rule: ScheduleRule, aircraft: AssignableAircraft, flight: FlightLeg) -> str:
    """Human-readable violation message."""
    name = rule.name or f"{aircraft.registration} {rule.action.label}"
    if rule.message_template:
        return rule.message_template.format(
            name=name,
            registration=aircraft.registration,
            flight_number=flight.flight_number,
            action=rule.action.label,
            enforcement=rule.enforcement.value,
        )
    if rule.is_hard:
        return f"{name} (hard, blocked)"
    return f"{name} (soft, {rule.soft_penalty:,.0f} pts)"


def sort_rules(rules: Iterable[ScheduleRule]) -> List[ScheduleRule]:
    """Active rules in evaluation order."""
    return sorted((r for r in rules if r.is_active), key=lambda r: (r.priority, r.id))


def evaluate_rules(
    flight: FlightLeg,
    aircraft: AssignableAircraft,
    rules: Sequence[ScheduleRule],
    context: RotationContext = EMPTY_CONTEXT,
    type_families: Optional[Dict[str, str]] = None
) -> EvalResult:
    """
    Apply every active rule, in priority order, to one pairing.

    Args:
        flight: Flight being placed
        aircraft: Candidate tail
        rules: Operator-configured rules
        context: Candidate tail's surrounding rotation
        type_families: Aircraft type -> family label, for family-scoped rules

    Returns:
        EvalResult listing hard and soft violations
    """
    family = (type_families or {}).get(aircraft.aircraft_type)
    result = EvalResult()

    for rule in sort_rules(rules):
        if rule.action.is_preference:
            continue
        if not rule.applies_on(flight.date):
            continue
        if not matches_scope(aircraft, rule, family):
            continue
        if not is_violated(rule.action, matches_criteria(flight, rule, context)):
            continue

        result.violations.append(RuleViolation(
            rule_id=rule.id,
            rule_name=rule.name,
            enforcement=rule.enforcement,
            penalty_cost=float("inf") if rule.is_hard else rule.soft_penalty,
            message=build_message(rule, aircraft, flight)
        ))

    return result


def evaluate_bonus(
    flight: FlightLeg,
    aircraft: AssignableAircraft,
    rules: Sequence[ScheduleRule],
    context: RotationContext = EMPTY_CONTEXT,
    type_families: Optional[Dict[str, str]] = None
) -> float:
    """
    Preference bonus from must_fly / should_fly rules.

    A positive number means the aircraft is preferred for this flight.
    """
    family = (type_families or {}).get(aircraft.aircraft_type)
    bonus = 0.0

    for rule in sort_rules(rules):
        if not rule.action.is_preference:
            continue
        if not rule.applies_on(flight.date):
            continue
        if not matches_scope(aircraft, rule, family):
            continue
        if not matches_criteria(flight, rule, context):
            continue

        if rule.action == RuleAction.MUST_FLY:
            bonus += MUST_FLY_BONUS
        else:
            bonus += rule.soft_penalty

    return bonus
