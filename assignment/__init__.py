"""Tail assignment engines: constructor, refiner, swap validation, exact solvers."""

from assignment.config import EngineConfig, AssignmentMethod
from assignment.conflicts import (
    TatCheck,
    TatStatus,
    LegConflict,
    evaluate_gap,
    classify_gap,
    annotate_rotation,
    annotate_assignment,
    find_chain_breaks,
    find_override_conflicts,
)
from assignment.rules import RotationContext, evaluate_rules, evaluate_bonus
from assignment.constructor import GreedyConstructor, construct_assignment
from assignment.refiner import (
    SAConfig,
    SA_PRESETS,
    SAProgress,
    RefinementStats,
    RefinementResult,
    CancellationToken,
    SimulatedAnnealingRefiner,
    RefinementRunner,
    assignment_cost,
    refine_assignment,
)
from assignment.swap import SwapValidation, SwapWarning, validate_swap, apply_swap
from assignment.overrides import (
    ManualOverride,
    InMemoryOverrideRepository,
    PendingOverrides,
    apply_overrides,
)
from assignment.session import AssignmentSession, Notification

__all__ = [
    "EngineConfig",
    "AssignmentMethod",
    "TatCheck",
    "TatStatus",
    "LegConflict",
    "evaluate_gap",
    "classify_gap",
    "annotate_rotation",
    "annotate_assignment",
    "find_chain_breaks",
    "find_override_conflicts",
    "RotationContext",
    "evaluate_rules",
    "evaluate_bonus",
    "GreedyConstructor",
    "construct_assignment",
    "SAConfig",
    "SA_PRESETS",
    "SAProgress",
    "RefinementStats",
    "RefinementResult",
    "CancellationToken",
    "SimulatedAnnealingRefiner",
    "RefinementRunner",
    "assignment_cost",
    "refine_assignment",
    "SwapValidation",
    "SwapWarning",
    "validate_swap",
    "apply_swap",
    "ManualOverride",
    "InMemoryOverrideRepository",
    "PendingOverrides",
    "apply_overrides",
    "AssignmentSession",
    "Notification",
]
