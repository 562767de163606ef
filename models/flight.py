"""Flight leg data model."""

from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

MINUTES_PER_DAY = 1440


@dataclass(frozen=True, order=True)
class FlightKey:
    """
    Identifies one flight instance: a scheduled flight on one calendar date.

    Attributes:
        flight_id: Stable identifier of the scheduled flight
        date: Operating date of this instance
    """
    flight_id: str
    date: date

    def __str__(self) -> str:
        return f"{self.flight_id}@{self.date.isoformat()}"


@dataclass(frozen=True)
class FlightLeg:
    """
    Represents one scheduled departure on one calendar date.

    Times are minutes from midnight of ``date``. An arrival past midnight is
    expressed as ``sta_minutes > 1440``.

    Attributes:
        flight_id: Stable flight identifier (same across dates)
        flight_number: Commercial flight number (e.g., "VN123")
        dep_station: Departure station code
        arr_station: Arrival station code
        std_minutes: Scheduled departure, minutes from midnight
        sta_minutes: Scheduled arrival, minutes from midnight
        aircraft_type: Scheduled aircraft type (ICAO code)
        date: Operating date
        domestic: True for a domestic leg, False for international
        pinned_registration: Manual override; the leg is fixed to this tail
        route_id: Groups legs into a multi-sector rotation
        service_type: Service type code (e.g., "J" scheduled passenger)
    """
    flight_id: str
    flight_number: str
    dep_station: str
    arr_station: str
    std_minutes: int
    sta_minutes: int
    aircraft_type: str
    date: date
    domestic: bool = True
    pinned_registration: Optional[str] = None
    route_id: Optional[str] = None
    service_type: str = "J"

    @property
    def key(self) -> FlightKey:
        """Flight-instance key."""
        return FlightKey(self.flight_id, self.date)

    @property
    def block_minutes(self) -> int:
        """Block duration in minutes."""
        return self.sta_minutes - self.std_minutes

    @property
    def start(self) -> int:
        """Departure as absolute minutes (comparable across dates)."""
        return self.date.toordinal() * MINUTES_PER_DAY + self.std_minutes

    @property
    def end(self) -> int:
        """Arrival as absolute minutes (comparable across dates)."""
        return self.date.toordinal() * MINUTES_PER_DAY + self.sta_minutes

    @property
    def is_pinned(self) -> bool:
        """Whether a manual override fixes this leg to a tail."""
        return self.pinned_registration is not None

    @property
    def is_overnight(self) -> bool:
        """Whether the leg arrives after midnight."""
        return self.sta_minutes > MINUTES_PER_DAY or self.sta_minutes < self.std_minutes

    def overlaps(self, other: 'FlightLeg') -> bool:
        """Check if the two legs occupy the aircraft at the same time."""
        return self.start < other.end and other.start < self.end

    def same_route_as(self, other: 'FlightLeg') -> bool:
        """Check if both legs belong to the same rotation."""
        return self.route_id is not None and self.route_id == other.route_id

    @property
    def rotation_key(self) -> Tuple:
        """Legs of one route on one date share a key; other legs stand alone."""
        if self.route_id is None:
            return ("leg", self.flight_id, self.date)
        return ("route", self.route_id, self.date)

    def __repr__(self) -> str:
        return (
            f"FlightLeg({self.flight_number} {self.date.strftime('%m/%d')} "
            f"{self.dep_station}→{self.arr_station} "
            f"{format_minutes(self.std_minutes)}-{format_minutes(self.sta_minutes)})"
        )


def format_minutes(minutes: int) -> str:
    """Format minutes from midnight as HH:MM (wrapping next-day arrivals)."""
    minutes = minutes % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_hhmm(value: str) -> int:
    """Parse an HH:MM string into minutes from midnight."""
    hours, _, mins = value.partition(":")
    return int(hours) * 60 + int(mins or 0)


def route_blocks(flights: Iterable[FlightLeg]) -> List[List[FlightLeg]]:
    """Group legs into rotation units, each chronological, ordered by first departure."""
    blocks: Dict[Tuple, List[FlightLeg]] = {}
    for flight in sorted(flights, key=lambda f: (f.start, f.end, f.flight_id)):
        blocks.setdefault(flight.rotation_key, []).append(flight)
    return list(blocks.values())
