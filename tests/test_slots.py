from datetime import date, datetime, timedelta

import pytest

from vaxtracker.core.slots import (
    Slot, clamp_to_window, day_bounds, generate_slots, overlaps, parse_day,
    parse_instant, to_iso,
)

DAY = date(2030, 1, 15)


def dt(hh, mm=0, day=DAY):
    return datetime(day.year, day.month, day.day, hh, mm)


class TestGenerateSlots:

    def test_default_grid_covers_window(self):
        """30-minute grid from 09:00 up to the 17:30 slot."""
        slots = generate_slots(DAY)
        assert len(slots) == 18
        assert slots[0] == Slot(dt(9), dt(9, 30), 30)
        assert slots[-1] == Slot(dt(17, 30), dt(18), 30)

    @pytest.mark.parametrize("duration", [15, 30, 45, 60, 90, 120])
    def test_grid_properties(self, duration):
        """Sorted, stride-aligned, inside 09:00-18:00, and same-duration slots only touch by stride."""
        slots = generate_slots(DAY, duration)
        assert slots, "expected at least one slot"

        starts = [s.start_at for s in slots]
        assert starts == sorted(starts)
        assert len(set(starts)) == len(starts)

        for s in slots:
            assert s.start_at >= dt(9)
            assert s.end_at <= dt(18)
            assert s.end_at - s.start_at == timedelta(minutes=duration)
            assert (s.start_at - dt(9)) % timedelta(minutes=30) == timedelta(0)
            assert s.duration_min == duration

        for a, b in zip(slots, slots[1:]):
            assert b.start_at - a.start_at == timedelta(minutes=30)

    def test_default_slots_do_not_overlap(self):
        slots = generate_slots(DAY)
        for a, b in zip(slots, slots[1:]):
            assert not overlaps(a.start_at, a.end_at, b.start_at, b.end_at)

    def test_uneven_duration_has_no_partial_trailing_slot(self):
        """45 minutes: 17:00 still fits, 17:30 would end at 18:15."""
        slots = generate_slots(DAY, 45)
        assert slots[-1].start_at == dt(17)
        assert slots[-1].end_at == dt(17, 45)
        assert len(slots) == 17

    def test_duration_longer_than_window(self):
        assert generate_slots(DAY, 600) == []

    def test_invalid_duration(self):
        with pytest.raises(ValueError):
            generate_slots(DAY, 0)

    def test_restartable(self):
        assert generate_slots(DAY) == generate_slots(DAY)

    def test_local_zone_window(self):
        """09:00 in New York (EST, UTC-5) is 14:00 UTC."""
        slots = generate_slots(DAY, tz="America/New_York")
        assert slots[0].start_at == dt(14)
        assert slots[-1].end_at == dt(23)

    def test_day_bounds(self):
        assert day_bounds(DAY) == (dt(0), dt(0, day=DAY + timedelta(days=1)))


class TestClampToWindow:

    def test_first_and_last_slot_fit(self):
        assert clamp_to_window(dt(9)) == Slot(dt(9), dt(9, 30), 30)
        assert clamp_to_window(dt(17, 30)) == Slot(dt(17, 30), dt(18), 30)

    def test_before_window(self):
        assert clamp_to_window(dt(8, 30)) is None

    def test_ending_after_window(self):
        """18:00 would end at 18:30."""
        assert clamp_to_window(dt(18)) is None
        assert clamp_to_window(dt(17, 45)) is None

    def test_longer_duration(self):
        assert clamp_to_window(dt(17), 60) == Slot(dt(17), dt(18), 60)
        assert clamp_to_window(dt(17, 30), 60) is None

    def test_end_past_last_representable_day(self):
        assert clamp_to_window(datetime(9999, 12, 31, 23, 45)) is None


class TestOverlaps:

    def test_half_open_intervals(self):
        assert overlaps(dt(9), dt(10), dt(9, 30), dt(10, 30))
        assert overlaps(dt(9), dt(12), dt(10), dt(11))
        assert not overlaps(dt(9), dt(10), dt(10), dt(11))
        assert not overlaps(dt(10), dt(11), dt(9), dt(10))


class TestInstantParsing:

    def test_utc_suffix(self):
        assert parse_instant("2030-01-15T10:00:00Z") == dt(10)

    def test_offset_is_normalized_to_utc(self):
        assert parse_instant("2030-01-15T12:00:00+02:00") == dt(10)

    def test_naive_value_uses_service_zone(self):
        assert parse_instant("2030-01-15T10:00:00") == dt(10)
        assert parse_instant("2030-01-15T09:00:00", "America/New_York") == dt(14)

    def test_sub_seconds_dropped(self):
        assert parse_instant("2030-01-15T10:00:00.750Z") == dt(10)

    def test_out_of_range_after_utc_conversion(self):
        """Year 1 at +01:00 is still in year 0 when read as UTC."""
        with pytest.raises(ValueError):
            parse_instant("0001-01-01T00:00:00+01:00")

    @pytest.mark.parametrize("value", ["", "tomorrow", "2030-13-01T10:00:00Z", "10:00"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_instant(value)

    def test_parse_day(self):
        assert parse_day("2030-01-15") == DAY
        with pytest.raises(ValueError):
            parse_day("15/01/2030")

    def test_to_iso(self):
        assert to_iso(dt(9)) == "2030-01-15T09:00:00Z"
        assert to_iso(dt(9).replace(microsecond=123456)) == "2030-01-15T09:00:00Z"
