"""Unit tests for turnaround and chain analysis."""

import pytest
from dataclasses import replace
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from models import TatOverride
from assignment.conflicts import (
    TatStatus,
    evaluate_gap,
    classify_gap,
    annotate_rotation,
    find_chain_breaks,
    find_override_conflicts,
)


class TestEvaluateGap:
    """Tests for the pairwise TAT check."""

    def test_insufficient_turnaround(self, make_leg, config):
        """Test a 40 minute domestic turn against a 45 minute minimum."""
        a = make_leg("A", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("B", "SGN", "DAD", "10:40", "12:00")
        check = evaluate_gap(a, b, config)
        assert check.gap_minutes == 40
        assert check.min_tat == 45
        assert not check.ok

    def test_exact_minimum_is_feasible(self, make_leg, config):
        a = make_leg("A", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("B", "SGN", "DAD", "10:45", "12:00")
        assert evaluate_gap(a, b, config).ok

    def test_international_case(self, make_leg, config):
        """Test the int-int minimum applies when both legs are international."""
        a = make_leg("A", "BKK", "SGN", "08:00", "10:00", domestic=False)
        b = make_leg("B", "SGN", "SIN", "11:00", "13:00", domestic=False)
        check = evaluate_gap(a, b, config)
        assert check.min_tat == 75
        assert not check.ok

    def test_override_applies(self, make_leg, config):
        a = make_leg("A", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("B", "SGN", "DAD", "10:40", "12:00")
        relaxed = replace(config, tat_overrides={"X": TatOverride(dd=30)})
        assert evaluate_gap(a, b, relaxed).ok

    def test_tail_type_drives_minimum(self, make_leg, config):
        """Test the operating tail's type, not the scheduled one, sets the TAT."""
        a = make_leg("A", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("B", "SGN", "DAD", "10:30", "12:00")
        assert not evaluate_gap(a, b, config).ok
        assert evaluate_gap(a, b, config, aircraft_type="Y").ok

    def test_station_mismatch_is_not_a_turnaround(self, make_leg, config):
        a = make_leg("A", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("B", "DAD", "SGN", "12:00", "13:00")
        assert evaluate_gap(a, b, config) is None

    def test_negative_gap(self, make_leg, config):
        a = make_leg("A", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("B", "SGN", "DAD", "09:30", "11:00")
        assert evaluate_gap(a, b, config) is None

    def test_zero_minimum_always_ok(self, make_leg, zero_tat_config):
        a = make_leg("A", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("B", "SGN", "DAD", "10:00", "11:00")
        check = evaluate_gap(a, b, zero_tat_config)
        assert check.gap_minutes == 0
        assert check.ok


class TestClassifyGap:
    """Tests for the display classification."""

    def test_tight_within_buffer(self, make_leg, config):
        a = make_leg("A", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("B", "SGN", "DAD", "10:48", "12:00")
        assert classify_gap(evaluate_gap(a, b, config), 5) == TatStatus.TIGHT

    def test_ok_beyond_buffer(self, make_leg, config):
        a = make_leg("A", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("B", "SGN", "DAD", "10:50", "12:00")
        assert classify_gap(evaluate_gap(a, b, config), 5) == TatStatus.OK

    def test_violated(self, make_leg, config):
        a = make_leg("A", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("B", "SGN", "DAD", "10:20", "12:00")
        assert classify_gap(evaluate_gap(a, b, config), 5) == TatStatus.VIOLATED


class TestAnnotateRotation:
    """Tests for per-pair rotation annotations."""

    def test_annotations(self, make_leg, config):
        """Test overlap, chain break and TAT status per consecutive pair."""
        legs = [
            make_leg("3", "DAD", "SGN", "12:10", "13:00"),
            make_leg("1", "HAN", "SGN", "08:00", "10:00"),
            make_leg("2", "SGN", "DAD", "10:20", "11:20"),
            make_leg("4", "SGN", "HAN", "12:30", "14:00"),
        ]
        notes = annotate_rotation("T1", legs, config)
        assert len(notes) == 3

        first, second, third = notes
        assert first.status == TatStatus.VIOLATED
        assert first.has_problem
        assert not second.chain_break and second.status == TatStatus.OK
        assert third.overlap
        assert third.tat is None


class TestChainBreaks:
    """Tests for chain break detection."""

    def test_breaks_found_per_tail(self, make_leg):
        a = make_leg("1", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("2", "DAD", "HAN", "11:00", "12:00")
        c = make_leg("3", "SGN", "DAD", "11:00", "12:00")
        breaks = find_chain_breaks({a.key: "T1", b.key: "T1", c.key: "T2"}, [a, b, c])
        assert len(breaks) == 1
        assert breaks[0].key == b.key
        assert breaks[0].prev_arr == "SGN"
        assert breaks[0].next_dep == "DAD"

    def test_unassigned_flights_ignored(self, make_leg):
        a = make_leg("1", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("2", "DAD", "HAN", "11:00", "12:00")
        assert find_chain_breaks({a.key: "T1"}, [a, b]) == []


class TestOverrideConflicts:
    """Tests for malformed override detection."""

    def test_overlapping_pins_reported(self, make_leg):
        a = make_leg("1", "HAN", "SGN", "08:00", "10:00", pinned_registration="T1")
        b = make_leg("2", "SGN", "DAD", "09:30", "11:00", pinned_registration="T1")
        c = make_leg("3", "SGN", "DAD", "09:30", "11:00", pinned_registration="T2")
        conflicts = find_override_conflicts([a, b, c])
        assert len(conflicts) == 1
        assert conflicts[0].registration == "T1"
        assert {conflicts[0].first, conflicts[0].second} == {a.key, b.key}

    def test_unpinned_legs_ignored(self, make_leg):
        a = make_leg("1", "HAN", "SGN", "08:00", "10:00")
        b = make_leg("2", "SGN", "DAD", "09:30", "11:00")
        assert find_override_conflicts([a, b]) == []
