"""Tests for meeting duration and maximum-length rules."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from adios import policy

NOW = datetime(2024, 10, 1, 12, 0, tzinfo=timezone.utc)


def make_meeting(started_minutes_ago, *, ended_minutes_ago=None, override=None):
    return SimpleNamespace(
        start_time=NOW - timedelta(minutes=started_minutes_ago),
        end_time=None if ended_minutes_ago is None else NOW - timedelta(minutes=ended_minutes_ago),
        max_meeting_length_minutes=override,
    )


def make_user(default=None):
    return SimpleNamespace(default_meeting_length_minutes=default)


class TestMaxDuration:
    """Meeting override beats user default beats the system default."""

    def test_meeting_override_wins(self):
        meeting = make_meeting(0, override=20)
        assert policy.max_duration(meeting, make_user(60)) == timedelta(minutes=20)
        assert policy.max_duration_source(meeting, make_user(60)) == "meeting"

    def test_user_default_used_without_override(self):
        meeting = make_meeting(0)
        assert policy.max_duration(meeting, make_user(60)) == timedelta(minutes=60)
        assert policy.max_duration_source(meeting, make_user(60)) == "user"

    def test_system_default_is_forty_minutes(self):
        meeting = make_meeting(0)
        assert policy.max_duration(meeting, make_user()) == timedelta(minutes=40)
        assert policy.max_duration_source(meeting, make_user()) == "default"


class TestDuration:
    def test_open_meeting_duration_grows_with_now(self):
        meeting = make_meeting(38)
        assert policy.duration(meeting, NOW) == timedelta(minutes=38)
        assert policy.duration(meeting, NOW + timedelta(minutes=5)) == timedelta(minutes=43)

    def test_ended_meeting_duration_is_frozen(self):
        meeting = make_meeting(90, ended_minutes_ago=60)
        assert policy.is_ended(meeting)
        assert policy.duration(meeting, NOW) == timedelta(minutes=30)
        assert policy.duration(meeting, NOW + timedelta(days=1)) == timedelta(minutes=30)

    def test_naive_times_are_read_as_utc(self):
        meeting = SimpleNamespace(
            start_time=(NOW - timedelta(minutes=5)).replace(tzinfo=None),
            end_time=None,
            max_meeting_length_minutes=None,
        )
        assert policy.duration(meeting, NOW) == timedelta(minutes=5)


class TestMinutesRemaining:
    def test_remaining_under_default(self):
        assert policy.minutes_remaining(make_meeting(38), make_user(), NOW) == 2

    def test_remaining_is_floored(self):
        meeting = SimpleNamespace(
            start_time=NOW - timedelta(minutes=38, seconds=30),
            end_time=None,
            max_meeting_length_minutes=None,
        )
        assert policy.minutes_remaining(meeting, make_user(), NOW) == 1

    def test_remaining_is_negative_past_limit(self):
        assert policy.minutes_remaining(make_meeting(45), make_user(), NOW) == -5


class TestIsOverLimit:
    def test_over_default(self):
        assert policy.is_over_limit(make_meeting(41), make_user(), NOW)

    def test_exactly_at_limit_is_not_over(self):
        assert not policy.is_over_limit(make_meeting(40), make_user(), NOW)

    def test_override_extends_limit(self):
        assert not policy.is_over_limit(make_meeting(45, override=60), make_user(), NOW)

    def test_user_default_shortens_limit(self):
        assert policy.is_over_limit(make_meeting(25), make_user(20), NOW)
