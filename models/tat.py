"""Directional turnaround-time (TAT) model."""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class TatOverride:
    """
    Manual replacement values for some of the four directional cases.

    Unset entries fall back to the aircraft type's own values.
    """
    dd: Optional[int] = None
    di: Optional[int] = None
    id: Optional[int] = None
    ii: Optional[int] = None

    def get(self, case: str) -> Optional[int]:
        return getattr(self, case)


@dataclass(frozen=True)
class AircraftTypeTAT:
    """
    Minimum ground times for one aircraft type.

    Scheduled values are used for network planning; the absolute minimums
    are the operational floor.

    Attributes:
        aircraft_type: ICAO aircraft type
        dom_dom: Scheduled TAT, domestic arrival to domestic departure
        dom_int: Scheduled TAT, domestic arrival to international departure
        int_dom: Scheduled TAT, international arrival to domestic departure
        int_int: Scheduled TAT, international arrival to international departure
        min_dd: Absolute minimum, domestic to domestic
        min_di: Absolute minimum, domestic to international
        min_id: Absolute minimum, international to domestic
        min_ii: Absolute minimum, international to international
        default: Single fallback for any unset directional value
    """
    aircraft_type: str
    dom_dom: Optional[int] = None
    dom_int: Optional[int] = None
    int_dom: Optional[int] = None
    int_int: Optional[int] = None
    min_dd: Optional[int] = None
    min_di: Optional[int] = None
    min_id: Optional[int] = None
    min_ii: Optional[int] = None
    default: Optional[int] = None

    def scheduled(self, case: str) -> Optional[int]:
        """Scheduled value for a directional case ("dd", "di", "id", "ii")."""
        return {
            "dd": self.dom_dom,
            "di": self.dom_int,
            "id": self.int_dom,
            "ii": self.int_int,
        }[case]

    def minimum(self, case: str) -> Optional[int]:
        """Absolute-minimum value for a directional case."""
        return {
            "dd": self.min_dd,
            "di": self.min_di,
            "id": self.min_id,
            "ii": self.min_ii,
        }[case]


def tat_case(arriving_domestic: bool, departing_domestic: bool) -> str:
    """Select the directional case for an arrival/departure pair."""
    if arriving_domestic and departing_domestic:
        return "dd"
    if arriving_domestic:
        return "di"
    if departing_domestic:
        return "id"
    return "ii"


def _first_set(*values: Optional[int]) -> int:
    for value in values:
        if value is not None:
            return value
    return 0


@dataclass(frozen=True)
class TatTable:
    """
    TAT records for every aircraft type in the fleet.

    Resolution order: override -> type-specific -> type default -> 0
    (0 means no constraint is enforced).
    """
    types: Dict[str, AircraftTypeTAT] = field(default_factory=dict, hash=False)

    @classmethod
    def from_records(cls, records) -> 'TatTable':
        return cls(types={r.aircraft_type: r for r in records})

    def get(self, aircraft_type: str) -> Optional[AircraftTypeTAT]:
        return self.types.get(aircraft_type)

    def resolve(
        self,
        aircraft_type: str,
        arriving_domestic: bool,
        departing_domestic: bool,
        overrides: Optional[Dict[str, TatOverride]] = None,
        use_minimum: bool = False
    ) -> int:
        """
        Minimum ground time in minutes for a type and transition.

        Args:
            aircraft_type: Type of the tail operating both legs
            arriving_domestic: Whether the arriving leg is domestic
            departing_domestic: Whether the departing leg is domestic
            overrides: Per-type manual overrides
            use_minimum: Use the absolute-minimum set before the scheduled one

        Returns:
            Minutes; 0 when nothing constrains the turnaround
        """
        case = tat_case(arriving_domestic, departing_domestic)
        override = (overrides or {}).get(aircraft_type)
        override_value = override.get(case) if override else None

        record = self.types.get(aircraft_type)
        if record is None:
            return _first_set(override_value)

        if use_minimum:
            return _first_set(
                override_value,
                record.minimum(case),
                record.scheduled(case),
                record.default,
            )
        return _first_set(override_value, record.scheduled(case), record.default)

    def smallest(self, aircraft_types: Tuple[str, ...], use_minimum: bool = False) -> int:
        """Smallest TAT over all cases of the given types."""
        values = [
            self.resolve(t, arr, dep, use_minimum=use_minimum)
            for t in aircraft_types
            for arr in (True, False)
            for dep in (True, False)
        ]
        return min(values) if values else 0
