"""Core data models for the tail assignment engine."""

from models.flight import FlightLeg, FlightKey, format_minutes, parse_hhmm, route_blocks
from models.aircraft import AssignableAircraft, AircraftStatus
from models.tat import AircraftTypeTAT, TatOverride, TatTable, tat_case
from models.rules import (
    ScheduleRule,
    RuleAction,
    Enforcement,
    ScopeType,
    CriteriaType,
    RuleViolation,
    EvalResult,
)
from models.solution import (
    TailAssignmentResult,
    AssignmentSummary,
    ChainBreak,
    Rejection,
    RejectionReason,
    FamilySubstitution,
    OverrideConflict,
)

__all__ = [
    "FlightLeg",
    "FlightKey",
    "format_minutes",
    "parse_hhmm",
    "route_blocks",
    "AssignableAircraft",
    "AircraftStatus",
    "AircraftTypeTAT",
    "TatOverride",
    "TatTable",
    "tat_case",
    "ScheduleRule",
    "RuleAction",
    "Enforcement",
    "ScopeType",
    "CriteriaType",
    "RuleViolation",
    "EvalResult",
    "TailAssignmentResult",
    "AssignmentSummary",
    "ChainBreak",
    "Rejection",
    "RejectionReason",
    "FamilySubstitution",
    "OverrideConflict",
]
