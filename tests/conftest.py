"""Pytest fixtures for tail assignment tests."""

import pytest
from datetime import date
import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import FlightLeg, AssignableAircraft, AircraftTypeTAT, TatTable, parse_hhmm
from assignment.config import EngineConfig
from data.generators.micro_fleet import generate_micro_fleet
from data.generators.small_fleet import generate_small_fleet

DAY = date(2024, 1, 1)


@pytest.fixture
def day():
    return DAY


@pytest.fixture
def make_leg():
    """Factory for legs; times may be given as "HH:MM" or minutes."""
    def _make(flight_id, dep, arr, std, sta, aircraft_type="X", on=DAY, **kwargs):
        std = parse_hhmm(std) if isinstance(std, str) else std
        sta = parse_hhmm(sta) if isinstance(sta, str) else sta
        return FlightLeg(
            flight_id=flight_id,
            flight_number=f"VN{flight_id}",
            dep_station=dep,
            arr_station=arr,
            std_minutes=std,
            sta_minutes=sta,
            aircraft_type=aircraft_type,
            date=on,
            **kwargs
        )
    return _make


@pytest.fixture
def tat_table():
    """Type X: 45 dom-dom, 60 mixed, 75 int-int. Type Y: only a default."""
    return TatTable.from_records([
        AircraftTypeTAT("X", dom_dom=45, dom_int=60, int_dom=60, int_int=75,
                        min_dd=30, min_ii=50, default=40),
        AircraftTypeTAT("Y", default=20),
    ])


@pytest.fixture
def config(tat_table):
    """Exact-type configuration with X and Y in one family."""
    return EngineConfig(tat_table=tat_table, type_families={"X": "XF", "Y": "XF"})


@pytest.fixture
def zero_tat_config():
    """No TAT records at all: every turnaround is unconstrained."""
    return EngineConfig()


@pytest.fixture
def two_tails():
    """Two operational tails of type X."""
    return [
        AssignableAircraft("T1", "X", home_base="SGN"),
        AssignableAircraft("T2", "X", home_base="SGN"),
    ]


@pytest.fixture
def micro_fleet():
    """Full micro-fleet test instance."""
    return generate_micro_fleet()


@pytest.fixture
def small_fleet():
    """Seeded small-fleet test instance (two days)."""
    return generate_small_fleet(seed=11, days=2)
