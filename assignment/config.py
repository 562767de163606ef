"""Engine configuration and shared cost weights."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from models import ScheduleRule, TatOverride, TatTable, FlightLeg

# Cost weights (same scale as rule penalties)
OVERFLOW_COST = 50000.0
CHAIN_BREAK_COST = 5000.0
FAMILY_SUB_COST = 500.0
TAT_VIOLATION_COST = 3000.0
IDLE_GAP_THRESHOLD_MINUTES = 360
IDLE_GAP_COST_PER_HOUR = 200.0
UTILIZATION_SPREAD_WEIGHT = 10.0
TAILS_USED_COST = 1000.0

TIGHT_BUFFER_MINUTES = 5


class AssignmentMethod(Enum):
    """Constructor objective."""
    MINIMIZE = "minimize"
    BALANCE = "balance"


@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable configuration passed into every engine call.

    Attributes:
        tat_table: Directional TAT records per aircraft type
        method: Constructor objective
        allow_family_substitution: Allow tails of another type in the same family
        type_families: Aircraft type -> family label
        tat_overrides: Aircraft type -> manual TAT override
        rules: Operator-defined scheduling rules
        use_minimum_tat: Use the absolute-minimum TAT set
        tight_buffer_minutes: Warning-only buffer for "tight" turnarounds
    """
    tat_table: TatTable = field(default_factory=TatTable)
    method: AssignmentMethod = AssignmentMethod.MINIMIZE
    allow_family_substitution: bool = False
    type_families: Dict[str, str] = field(default_factory=dict, hash=False)
    tat_overrides: Dict[str, TatOverride] = field(default_factory=dict, hash=False)
    rules: Tuple[ScheduleRule, ...] = ()
    use_minimum_tat: bool = False
    tight_buffer_minutes: int = TIGHT_BUFFER_MINUTES

    def family_of(self, aircraft_type: str) -> Optional[str]:
        return self.type_families.get(aircraft_type)

    def same_family(self, type_a: str, type_b: str) -> bool:
        family = self.family_of(type_a)
        return family is not None and family == self.family_of(type_b)

    def can_operate(self, scheduled_type: str, aircraft_type: str) -> bool:
        """Check if a tail of ``aircraft_type`` may fly a leg scheduled for ``scheduled_type``."""
        if scheduled_type == aircraft_type:
            return True
        return self.allow_family_substitution and self.same_family(scheduled_type, aircraft_type)

    def group_key(self, aircraft_type: str) -> str:
        """Types that compete for the same tails share a group key."""
        if self.allow_family_substitution:
            return self.family_of(aircraft_type) or aircraft_type
        return aircraft_type

    def min_tat(self, aircraft_type: str, arriving: FlightLeg, departing: FlightLeg) -> int:
        """Minimum turnaround between two legs flown by a tail of ``aircraft_type``."""
        return self.tat_table.resolve(
            aircraft_type,
            arriving.domestic,
            departing.domestic,
            self.tat_overrides,
            use_minimum=self.use_minimum_tat
        )
