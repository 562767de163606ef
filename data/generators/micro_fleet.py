"""Micro-Fleet test dataset generator.

Creates a two-day, 13-flights-per-day instance with five tails.
Small enough to reason about by hand, but it exercises pins, family
substitution, hard and soft rules, international turnarounds and an
aircraft type with no operational tail (overflow by design).
"""

from datetime import date, timedelta
from typing import List, Tuple

from models import (
    FlightLeg,
    AssignableAircraft,
    AircraftStatus,
    AircraftTypeTAT,
    TatTable,
    ScheduleRule,
    RuleAction,
    Enforcement,
    ScopeType,
    CriteriaType,
    format_minutes,
)
from assignment.config import EngineConfig

TYPE_FAMILIES = {"A321": "A32X", "A320": "A32X", "AT72": "ATR"}


def micro_tat_table() -> TatTable:
    return TatTable.from_records([
        AircraftTypeTAT("A321", dom_dom=40, dom_int=60, int_dom=60, int_int=75,
                        min_dd=30, min_di=45, min_id=45, min_ii=60),
        AircraftTypeTAT("A320", dom_dom=35, dom_int=55, int_dom=55, int_int=70,
                        min_dd=25, min_di=40, min_id=40, min_ii=55),
        AircraftTypeTAT("AT72", default=25),
    ])


def micro_rules() -> Tuple[ScheduleRule, ...]:
    return (
        ScheduleRule(
            id="R1",
            name="VN-A602 not cleared for BKK",
            action=RuleAction.MUST_NOT_FLY,
            enforcement=Enforcement.HARD,
            scope_type=ScopeType.REGISTRATION,
            scope_values=("VN-A602",),
            criteria_type=CriteriaType.AIRPORTS,
            criteria_values={"airports": ["BKK"], "direction": "any"},
            priority=10,
        ),
        ScheduleRule(
            id="R2",
            name="A320 should avoid overnight legs",
            action=RuleAction.SHOULD_AVOID,
            enforcement=Enforcement.SOFT,
            scope_type=ScopeType.TYPE,
            scope_values=("A320",),
            criteria_type=CriteriaType.OVERNIGHT,
            penalty_cost=1500.0,
            priority=50,
        ),
    )


def generate_micro_fleet(
    start: date = date(2024, 1, 1),
    days: int = 2
) -> Tuple[List[FlightLeg], List[AssignableAircraft], EngineConfig]:
    """
    Generate the Micro-Fleet test instance.

    Returns:
        Tuple of (flights, aircraft, config)

    Dataset Details:
        - 13 flights per day: 6 A321, 6 A320, 1 AT72
        - 4 operational A32X tails, 1 ATR in maintenance
        - Day 1 flight F101 is pinned to VN-A321
        - Rule R1 (hard) keeps VN-A602 away from BKK
        - Rule R2 (soft) penalizes overnight A320 legs
    """
    aircraft = [
        AssignableAircraft("VN-A321", "A321", home_base="SGN"),
        AssignableAircraft("VN-A322", "A321", home_base="HAN"),
        AssignableAircraft("VN-A601", "A320", home_base="HAN"),
        AssignableAircraft("VN-A602", "A320", home_base="SGN"),
        AssignableAircraft("VN-B201", "AT72", home_base="SGN", status=AircraftStatus.MAINTENANCE),
    ]

    # (id, number, dep, arr, std, sta, type, domestic)
    template = [
        # A321 trunk shuttles
        ("F100", "VN100", "SGN", "HAN", 360, 490, "A321", True),
        ("F101", "VN101", "HAN", "SGN", 540, 670, "A321", True),
        ("F102", "VN102", "SGN", "HAN", 720, 850, "A321", True),
        ("F103", "VN103", "HAN", "SGN", 900, 1030, "A321", True),
        ("F104", "VN104", "HAN", "SGN", 390, 520, "A321", True),
        ("F105", "VN105", "SGN", "HAN", 570, 700, "A321", True),
        # A320 regional and international
        ("F200", "VN200", "SGN", "DAD", 420, 500, "A320", True),
        ("F201", "VN201", "DAD", "SGN", 540, 620, "A320", True),
        ("F202", "VN202", "HAN", "BKK", 480, 600, "A320", False),
        ("F203", "VN203", "BKK", "HAN", 680, 800, "A320", False),
        ("F204", "VN204", "SGN", "PQC", 1290, 1350, "A320", True),
        ("F205", "VN205", "PQC", "SGN", 1390, 1450, "A320", True),
        # Turboprop with no operational tail
        ("F300", "VN300", "SGN", "VCA", 480, 530, "AT72", True),
    ]

    flights = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        for fid, number, dep, arr, std, sta, ac_type, domestic in template:
            pinned = "VN-A321" if (fid == "F101" and offset == 0) else None
            flights.append(FlightLeg(
                flight_id=fid,
                flight_number=number,
                dep_station=dep,
                arr_station=arr,
                std_minutes=std,
                sta_minutes=sta,
                aircraft_type=ac_type,
                date=day,
                domestic=domestic,
                pinned_registration=pinned,
            ))

    config = EngineConfig(
        tat_table=micro_tat_table(),
        type_families=dict(TYPE_FAMILIES),
        rules=micro_rules(),
    )
    return flights, aircraft, config


def print_instance_summary(
    flights: List[FlightLeg],
    aircraft: List[AssignableAircraft],
    config: EngineConfig
) -> None:
    """Print a summary of the instance."""
    print("\n" + "=" * 60)
    print("             MICRO-FLEET TEST INSTANCE")
    print("=" * 60)

    print("\nFLIGHTS:")
    print("-" * 60)
    print(f"{'ID':<5} {'Date':<6} {'From':<4} {'To':<4} {'STD':<6} {'STA':<6} {'Type':<5} {'Pin':<8}")
    print("-" * 60)
    for f in sorted(flights, key=lambda x: (x.date, x.std_minutes, x.flight_id)):
        print(
            f"{f.flight_id:<5} {f.date.strftime('%m/%d'):<6} {f.dep_station:<4} {f.arr_station:<4} "
            f"{format_minutes(f.std_minutes):<6} {format_minutes(f.sta_minutes):<6} "
            f"{f.aircraft_type:<5} {f.pinned_registration or '':<8}"
        )
    print(f"\nTotal flights: {len(flights)}")

    print("\nAIRCRAFT:")
    print("-" * 60)
    for ac in aircraft:
        print(f"  {ac.registration:<8} {ac.aircraft_type:<5} {ac.home_base or '-':<4} {ac.status.value}")

    print("\nRULES:")
    print("-" * 60)
    for rule in config.rules:
        print(f"  {rule.id}: {rule.name} ({rule.enforcement.value})")
    print(f"  Family substitution: {'on' if config.allow_family_substitution else 'off'}")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    flights, aircraft, config = generate_micro_fleet()
    print_instance_summary(flights, aircraft, config)
