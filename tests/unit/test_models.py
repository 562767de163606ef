"""Unit tests for data models."""

import pytest
from datetime import date, timedelta
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from models import (
    FlightKey,
    AssignableAircraft,
    AircraftStatus,
    AircraftTypeTAT,
    TatOverride,
    TatTable,
    TailAssignmentResult,
    tat_case,
    format_minutes,
    parse_hhmm,
)


class TestFlightLeg:
    """Tests for FlightLeg model."""

    def test_block_minutes(self, make_leg):
        """Test block time from departure and arrival minutes."""
        leg = make_leg("1", "SGN", "HAN", "06:00", "08:10")
        assert leg.block_minutes == 130

    def test_key_combines_id_and_date(self, make_leg, day):
        """Test the flight-instance key and its string form."""
        leg = make_leg("F1", "SGN", "HAN", "06:00", "08:10")
        assert leg.key == FlightKey("F1", day)
        assert str(leg.key) == "F1@2024-01-01"

    def test_same_flight_on_two_dates_has_distinct_keys(self, make_leg, day):
        """Test that instances of one flight on different dates differ."""
        a = make_leg("F1", "SGN", "HAN", "06:00", "08:10")
        b = make_leg("F1", "SGN", "HAN", "06:00", "08:10", on=day + timedelta(days=1))
        assert a.key != b.key
        assert a.key < b.key

    def test_absolute_times_cross_midnight(self, make_leg, day):
        """Test that a next-day arrival precedes the next day's departure correctly."""
        late = make_leg("1", "SGN", "PQC", "23:00", 1440 + 60)
        early = make_leg("2", "PQC", "SGN", "02:00", "03:00", on=day + timedelta(days=1))
        assert late.is_overnight
        assert early.start - late.end == 60

    def test_overlaps(self, make_leg):
        """Test overlap detection; touching legs do not overlap."""
        a = make_leg("1", "SGN", "HAN", "06:00", "08:00")
        b = make_leg("2", "HAN", "SGN", "07:30", "09:00")
        c = make_leg("3", "HAN", "SGN", "08:00", "09:00")
        assert a.overlaps(b)
        assert b.overlaps(a)
        assert not a.overlaps(c)

    def test_same_route(self, make_leg):
        """Test route grouping requires a shared route id."""
        a = make_leg("1", "SGN", "HAN", "06:00", "08:00", route_id="R1")
        b = make_leg("2", "HAN", "SGN", "09:00", "11:00", route_id="R1")
        c = make_leg("3", "HAN", "SGN", "09:00", "11:00")
        assert a.same_route_as(b)
        assert not a.same_route_as(c)
        assert not c.same_route_as(c)

    def test_pinned(self, make_leg):
        """Test pinned flag follows the pinned registration."""
        assert make_leg("1", "SGN", "HAN", 0, 60, pinned_registration="T1").is_pinned
        assert not make_leg("1", "SGN", "HAN", 0, 60).is_pinned


class TestTimeHelpers:
    """Tests for minute formatting helpers."""

    def test_format_wraps_next_day(self):
        assert format_minutes(1450) == "00:10"
        assert format_minutes(605) == "10:05"

    def test_parse(self):
        assert parse_hhmm("07:50") == 470
        assert parse_hhmm("23:59") == 1439


class TestAircraft:
    """Tests for AssignableAircraft model."""

    def test_only_operational_tails_are_active(self):
        assert AssignableAircraft("T1", "X").is_active
        assert not AssignableAircraft("T2", "X", status=AircraftStatus.MAINTENANCE).is_active
        assert not AssignableAircraft("T3", "X", status=AircraftStatus.STORED).is_active


class TestTatResolution:
    """Tests for directional TAT resolution."""

    def test_case_selection(self):
        """Test the four domestic/international cases."""
        assert tat_case(True, True) == "dd"
        assert tat_case(True, False) == "di"
        assert tat_case(False, True) == "id"
        assert tat_case(False, False) == "ii"

    def test_type_specific_values(self, tat_table):
        """Test each case uses the type's own scheduled value."""
        assert tat_table.resolve("X", True, True) == 45
        assert tat_table.resolve("X", True, False) == 60
        assert tat_table.resolve("X", False, True) == 60
        assert tat_table.resolve("X", False, False) == 75

    def test_override_beats_type_value(self, tat_table):
        """Test an override for one case replaces only that case."""
        overrides = {"X": TatOverride(dd=20)}
        assert tat_table.resolve("X", True, True, overrides) == 20
        assert tat_table.resolve("X", False, False, overrides) == 75

    def test_default_when_case_unset(self):
        """Test fallback to the type default for an unset case."""
        table = TatTable.from_records([AircraftTypeTAT("Z", dom_dom=30, default=50)])
        assert table.resolve("Z", True, True) == 30
        assert table.resolve("Z", False, False) == 50

    def test_unconstrained_when_nothing_set(self):
        """Test a record with no values resolves to zero."""
        table = TatTable.from_records([AircraftTypeTAT("Z")])
        assert table.resolve("Z", True, False) == 0

    def test_unknown_type(self, tat_table):
        """Test a type with no record uses its override, else zero."""
        assert tat_table.resolve("Q", True, True) == 0
        assert tat_table.resolve("Q", True, True, {"Q": TatOverride(dd=15)}) == 15

    def test_minimum_set(self, tat_table):
        """Test the absolute-minimum set falls back to scheduled values."""
        assert tat_table.resolve("X", True, True, use_minimum=True) == 30
        assert tat_table.resolve("X", True, False, use_minimum=True) == 60
        assert tat_table.resolve("X", False, False, use_minimum=True) == 50

    def test_override_beats_minimum(self, tat_table):
        overrides = {"X": TatOverride(ii=10)}
        assert tat_table.resolve("X", False, False, overrides, use_minimum=True) == 10

    def test_resolution_is_pure(self, tat_table):
        """Test identical inputs always give identical minutes."""
        overrides = {"X": TatOverride(di=33)}
        values = {tat_table.resolve("X", True, False, overrides) for _ in range(5)}
        assert values == {33}

    def test_smallest(self, tat_table):
        assert tat_table.smallest(("X",)) == 45
        assert tat_table.smallest(("X", "Y")) == 20


class TestTailAssignmentResult:
    """Tests for the result container."""

    def test_partition_checks(self, make_leg):
        """Test partition verification flags double booking and missing flights."""
        a = make_leg("1", "SGN", "HAN", "06:00", "08:00", pinned_registration="T1")
        b = make_leg("2", "HAN", "SGN", "09:00", "11:00")
        c = make_leg("3", "SGN", "DAD", "12:00", "13:00")

        good = TailAssignmentResult(assignments={a.key: "T1", b.key: "T1"}, overflow=[c])
        assert all(good.verify_partition([a, b, c]).values())

        doubled = TailAssignmentResult(assignments={a.key: "T1", c.key: "T2"}, overflow=[c])
        checks = doubled.verify_partition([a, b, c])
        assert not checks["disjoint"]
        assert not checks["complete"]

        moved = TailAssignmentResult(assignments={a.key: "T2", b.key: "T1", c.key: "T1"})
        assert not moved.verify_partition([a, b, c])["pins_respected"]

    def test_rotation_is_chronological(self, make_leg):
        late = make_leg("2", "HAN", "SGN", "09:00", "11:00")
        early = make_leg("1", "SGN", "HAN", "06:00", "08:00")
        result = TailAssignmentResult(assignments={late.key: "T1", early.key: "T1"})
        assert result.rotation("T1", [late, early]) == [early, late]

    def test_overflow_by_type(self, make_leg):
        x = make_leg("1", "SGN", "HAN", "06:00", "08:00", aircraft_type="X")
        y = make_leg("2", "SGN", "HAN", "06:00", "08:00", aircraft_type="Y")
        result = TailAssignmentResult(overflow=[x, y])
        assert result.overflow_by_type == {"X": [x], "Y": [y]}

    def test_to_dict_uses_string_keys(self, make_leg):
        leg = make_leg("1", "SGN", "HAN", "06:00", "08:00")
        result = TailAssignmentResult(assignments={leg.key: "T1"})
        result.refresh_summary()
        data = result.to_dict()
        assert data["assignments"] == {"1@2024-01-01": "T1"}
        assert data["summary"]["assigned"] == 1
        assert data["summary"]["total_flights"] == 1
