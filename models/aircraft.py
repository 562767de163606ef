"""Aircraft (tail) data model."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AircraftStatus(Enum):
    """Operational status of a tail."""
    OPERATIONAL = "operational"
    MAINTENANCE = "maintenance"
    STORED = "stored"


@dataclass(frozen=True)
class AssignableAircraft:
    """
    A tail eligible for assignment.

    Attributes:
        registration: Aircraft registration (tail number)
        aircraft_type: ICAO aircraft type
        home_base: Home base station code
        status: Operational status; only operational tails participate
    """
    registration: str
    aircraft_type: str
    home_base: Optional[str] = None
    status: AircraftStatus = AircraftStatus.OPERATIONAL

    @property
    def is_active(self) -> bool:
        return self.status == AircraftStatus.OPERATIONAL

    def __repr__(self) -> str:
        return f"Aircraft({self.registration}: {self.aircraft_type}, Base={self.home_base})"
