"""Small-Fleet test dataset generator.

Creates a multi-day instance for a mixed fleet from a seeded random plan.

DESIGN PRINCIPLE: A daily template is built tail by tail as hub-and-spoke
round trips that respect scheduled TAT, so every template flight has a
feasible tail. A few extra charter flights per day are then added on top,
so the engines have to choose what to overflow.
"""

from datetime import date, timedelta
import random
from typing import Dict, List, Tuple

from models import (
    FlightLeg,
    AssignableAircraft,
    AircraftTypeTAT,
    TatTable,
    ScheduleRule,
    RuleAction,
    Enforcement,
    ScopeType,
    CriteriaType,
)
from assignment.config import EngineConfig, AssignmentMethod

TYPE_FAMILIES = {
    "A321": "A32X",
    "A320": "A32X",
    "B789": "B78X",
    "AT72": "ATR",
}

# Spoke -> (block minutes, domestic)
SPOKES: Dict[str, Dict[str, Tuple[int, bool]]] = {
    "SGN": {"HAN": (130, True), "DAD": (80, True), "PQC": (60, True),
            "BKK": (95, False), "SIN": (120, False), "VCA": (50, True)},
    "HAN": {"SGN": (130, True), "DAD": (75, True), "HPH": (40, True),
            "BKK": (110, False), "ICN": (270, False)},
}

# Type -> (count, registration prefix, hub, spokes allowed)
FLEET_PLAN = {
    "A321": (4, "A6", "SGN", ["HAN", "DAD", "PQC", "BKK"]),
    "A320": (3, "A5", "HAN", ["SGN", "DAD", "BKK"]),
    "B789": (2, "B8", "SGN", ["HAN", "SIN"]),
    "AT72": (2, "T2", "HAN", ["HPH", "DAD"]),
}


def small_tat_table() -> TatTable:
    return TatTable.from_records([
        AircraftTypeTAT("A321", dom_dom=40, dom_int=60, int_dom=60, int_int=75,
                        min_dd=30, min_di=45, min_id=45, min_ii=60),
        AircraftTypeTAT("A320", dom_dom=35, dom_int=55, int_dom=55, int_int=70,
                        min_dd=25, min_di=40, min_id=40, min_ii=55),
        AircraftTypeTAT("B789", dom_dom=70, dom_int=90, int_dom=90, int_int=100,
                        default=90),
        AircraftTypeTAT("AT72", default=25),
    ])


def small_rules() -> Tuple[ScheduleRule, ...]:
    return (
        ScheduleRule(
            id="S1",
            name="Turboprops stay domestic",
            action=RuleAction.MUST_NOT_FLY,
            enforcement=Enforcement.HARD,
            scope_type=ScopeType.FAMILY,
            scope_values=("ATR",),
            criteria_type=CriteriaType.INTERNATIONAL,
            priority=1,
        ),
        ScheduleRule(
            id="S2",
            name="Daily block over 12h",
            action=RuleAction.SHOULD_AVOID,
            enforcement=Enforcement.SOFT,
            criteria_type=CriteriaType.DAILY_BLOCK_TIME,
            criteria_values={"operator": "gt", "minutes": 720},
            penalty_cost=2000.0,
            priority=20,
        ),
        ScheduleRule(
            id="S3",
            name="VN-A603 preferred on PQC",
            action=RuleAction.SHOULD_FLY,
            enforcement=Enforcement.SOFT,
            scope_type=ScopeType.REGISTRATION,
            scope_values=("VN-A603",),
            criteria_type=CriteriaType.AIRPORTS,
            criteria_values={"airports": ["PQC"], "direction": "to"},
            penalty_cost=1000.0,
            priority=30,
        ),
    )


def generate_small_fleet(
    seed: int = 7,
    days: int = 3,
    start: date = date(2024, 3, 4),
    charters_per_day: int = 4,
    method: AssignmentMethod = AssignmentMethod.MINIMIZE,
    allow_family_substitution: bool = True
) -> Tuple[List[FlightLeg], List[AssignableAircraft], EngineConfig]:
    """
    Generate the Small-Fleet test instance.

    Returns:
        Tuple of (flights, aircraft, config)

    Dataset Details:
        - 11 tails in 4 types and 3 families, two hubs (SGN, HAN)
        - Daily template of round trips, repeated for ``days`` days
        - ``charters_per_day`` extra A32X flights per day competing for tails
        - On the first day, each A321 rotation's first leg is pinned
    """
    rng = random.Random(seed)
    table = small_tat_table()

    aircraft: List[AssignableAircraft] = []
    # (flight id, number, dep, arr, std, sta, type, domestic, planned tail, route)
    template = []
    number = 100

    for ac_type, (count, prefix, hub, spokes) in FLEET_PLAN.items():
        for n in range(count):
            reg = f"VN-{prefix}{n + 1:02d}"
            aircraft.append(AssignableAircraft(reg, ac_type, home_base=hub))

            clock = rng.randint(300, 450)
            trip = 0
            while clock < 1260:
                spoke = rng.choice(spokes)
                block, domestic = SPOKES[hub][spoke]
                route = f"{reg}-T{trip}"

                out_tat = table.resolve(ac_type, True, domestic)
                back_tat = table.resolve(ac_type, domestic, True)

                template.append((f"F{number}", f"VN{number}", hub, spoke, clock,
                                 clock + block, ac_type, domestic, reg, route))
                number += 1
                back_dep = clock + block + back_tat + rng.randint(0, 30)
                template.append((f"F{number}", f"VN{number}", spoke, hub, back_dep,
                                 back_dep + block, ac_type, domestic, reg, route))
                number += 1

                clock = back_dep + block + out_tat + rng.randint(0, 45)
                trip += 1

    flights: List[FlightLeg] = []
    first_leg = {}
    for fid, _, _, _, _, _, ac_type, _, reg, _ in template:
        if ac_type == "A321" and reg not in first_leg:
            first_leg[reg] = fid

    for offset in range(days):
        day = start + timedelta(days=offset)
        for fid, num, dep, arr, std, sta, ac_type, domestic, reg, route in template:
            pinned = reg if offset == 0 and first_leg.get(reg) == fid else None
            flights.append(FlightLeg(
                flight_id=fid,
                flight_number=num,
                dep_station=dep,
                arr_station=arr,
                std_minutes=std,
                sta_minutes=sta,
                aircraft_type=ac_type,
                date=day,
                domestic=domestic,
                pinned_registration=pinned,
                route_id=f"{route}-{day.isoformat()}",
            ))

        for c in range(charters_per_day):
            hub = rng.choice(["SGN", "HAN"])
            spoke = rng.choice(sorted(SPOKES[hub]))
            block, domestic = SPOKES[hub][spoke]
            std = rng.randint(360, 1200)
            flights.append(FlightLeg(
                flight_id=f"C{offset}{c}",
                flight_number=f"VN9{offset}{c}",
                dep_station=hub,
                arr_station=spoke,
                std_minutes=std,
                sta_minutes=std + block,
                aircraft_type=rng.choice(["A321", "A320"]),
                date=day,
                domestic=domestic,
                service_type="C",
            ))

    config = EngineConfig(
        tat_table=table,
        method=method,
        allow_family_substitution=allow_family_substitution,
        type_families=dict(TYPE_FAMILIES),
        rules=small_rules(),
    )
    return flights, aircraft, config


def print_instance_summary(
    flights: List[FlightLeg],
    aircraft: List[AssignableAircraft],
    config: EngineConfig
) -> None:
    """Print a summary of the instance."""
    print("\n" + "=" * 70)
    print("              SMALL-FLEET TEST INSTANCE")
    print("=" * 70)

    print(f"\nTotal flights: {len(flights)}")
    by_type: Dict[str, int] = {}
    for f in flights:
        by_type[f.aircraft_type] = by_type.get(f.aircraft_type, 0) + 1
    print("Flights by type:", dict(sorted(by_type.items())))
    print(f"Pinned flights: {sum(1 for f in flights if f.is_pinned)}")
    print(f"International:  {sum(1 for f in flights if not f.domestic)}")

    print("\nAIRCRAFT:")
    print("-" * 70)
    for ac in aircraft:
        family = config.family_of(ac.aircraft_type) or "-"
        print(f"  {ac.registration:<9} {ac.aircraft_type:<5} {family:<5} base {ac.home_base}")
    print(f"\nTotal aircraft: {len(aircraft)}")

    print("\nRULES:")
    print("-" * 70)
    for rule in config.rules:
        print(f"  {rule.id}: {rule.name} ({rule.action.value}, {rule.enforcement.value})")
    print(f"  Method:              {config.method.value}")
    print(f"  Family substitution: {'on' if config.allow_family_substitution else 'off'}")
    print("=" * 70 + "\n")


if __name__ == "__main__":
    flights, aircraft, config = generate_small_fleet()
    print_instance_summary(flights, aircraft, config)
