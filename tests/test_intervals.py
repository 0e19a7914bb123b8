from datetime import date, datetime, time
from types import SimpleNamespace

import pytest

from clinicbook.domain.scheduling.intervals import check_within_schedule, find_conflict, overlaps

DAY = date(2024, 1, 15)
SCHEDULE = SimpleNamespace(work_date=DAY, start_time=time(8, 0), end_time=time(17, 0))


def at(hour, minute=0, day=DAY):
    return datetime.combine(day, time(hour, minute))


def slot(slot_id, start, end):
    return SimpleNamespace(id=slot_id, start_time=start, end_time=end)


class TestOverlaps:
    def test_touching_intervals_do_not_overlap(self):
        assert not overlaps(at(9), at(9, 30), at(9, 30), at(10))
        assert not overlaps(at(9, 30), at(10), at(9), at(9, 30))

    def test_partial_overlap(self):
        assert overlaps(at(9), at(9, 30), at(9, 15), at(9, 45))

    def test_containment_overlaps(self):
        assert overlaps(at(9), at(12), at(10), at(10, 30))
        assert overlaps(at(10), at(10, 30), at(9), at(12))

    def test_identical_intervals_overlap(self):
        assert overlaps(at(9), at(9, 30), at(9), at(9, 30))

    def test_overlap_is_symmetric(self):
        pairs = [
            (at(9), at(9, 30), at(9, 15), at(9, 45)),
            (at(9), at(9, 30), at(9, 30), at(10)),
            (at(8), at(17), at(12), at(13)),
        ]
        for s1, e1, s2, e2 in pairs:
            assert overlaps(s1, e1, s2, e2) == overlaps(s2, e2, s1, e1)


class TestFindConflict:
    def test_returns_first_overlapping_slot(self):
        existing = [slot(1, at(8), at(8, 30)), slot(2, at(9), at(9, 30)), slot(3, at(9, 20), at(10))]
        assert find_conflict(at(9, 15), at(9, 45), existing).id == 2

    def test_free_range_returns_none(self):
        existing = [slot(1, at(9), at(9, 30))]
        assert find_conflict(at(9, 30), at(10), existing) is None

    def test_excluded_slot_is_ignored(self):
        existing = [slot(1, at(9), at(9, 30))]
        assert find_conflict(at(9), at(9, 45), existing, exclude_id=1) is None


class TestCheckWithinSchedule:
    def test_contained_interval(self):
        assert check_within_schedule(SCHEDULE, at(9), at(9, 30)) is None

    def test_interval_may_fill_whole_window(self):
        assert check_within_schedule(SCHEDULE, at(8), at(17)) is None

    @pytest.mark.parametrize(
        "start,end,reason",
        [
            (at(9, 30), at(9, 30), "end time must be after start time"),
            (at(10), at(9), "end time must be after start time"),
            (at(9, day=date(2024, 1, 16)), at(9, 30, day=date(2024, 1, 16)), "date does not match schedule date"),
            (at(7), at(7, 30), "start before schedule start"),
            (at(16, 45), at(17, 15), "end after schedule end"),
        ],
    )
    def test_rejections_name_the_failed_bound(self, start, end, reason):
        assert check_within_schedule(SCHEDULE, start, end) == reason
