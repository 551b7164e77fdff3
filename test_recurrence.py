"""Tests for the recurrence engine (pure functions, no database)."""

from datetime import datetime, timedelta, timezone

import pytest

from recurrence import (
    calculate_next_occurrence_date,
    generate_next_occurrence,
    generate_occurrences,
    get_end_condition,
    get_recurring_pattern_description,
    parse_recurring_pattern,
    should_generate_next_occurrence,
    validate_recurring_pattern,
    validate_recurring_reminder,
)
from schemas import RecurrenceRule, StatusEnum

MONDAY = datetime(2024, 1, 15, 9, 0)


# =============================================================================
# parse_recurring_pattern
# =============================================================================


class TestParseRecurringPattern:
    """Rule derivation from reminder records."""

    def test_type_comes_from_repeat_pattern(self, make_reminder):
        rule = parse_recurring_pattern(make_reminder(repeat_pattern="monthly"))
        assert rule.type == "monthly"

    def test_interval_of_one_is_left_out(self, make_reminder):
        assert parse_recurring_pattern(make_reminder(custom_interval=1)).interval is None
        assert parse_recurring_pattern(make_reminder(custom_interval=None)).interval is None

    def test_custom_interval_is_kept(self, make_reminder):
        assert parse_recurring_pattern(make_reminder(custom_interval=3)).interval == 3

    def test_days_only_for_weekly(self, make_reminder):
        weekly = parse_recurring_pattern(make_reminder(repeat_pattern="weekly", repeat_days=[1, 3]))
        daily = parse_recurring_pattern(make_reminder(repeat_pattern="daily", repeat_days=[1, 3]))
        empty = parse_recurring_pattern(make_reminder(repeat_pattern="weekly", repeat_days=[]))

        assert weekly.days_of_week == [1, 3]
        assert daily.days_of_week is None
        assert empty.days_of_week is None

    def test_end_date_string_is_parsed(self, make_reminder):
        rule = parse_recurring_pattern(make_reminder(recurring_end_date="2024-03-31"))
        assert rule.end_date == datetime(2024, 3, 31)

    def test_unparseable_end_date_means_no_end(self, make_reminder):
        rule = parse_recurring_pattern(make_reminder(recurring_end_date="next tuesday-ish"))
        assert rule.end_date is None

    def test_parsing_is_repeatable(self, make_reminder):
        reminder = make_reminder(repeat_pattern="weekly", repeat_days=[2], custom_interval=2,
                                 recurring_end_date="2024-06-01")
        assert parse_recurring_pattern(reminder) == parse_recurring_pattern(reminder)


# =============================================================================
# calculate_next_occurrence_date
# =============================================================================


class TestCalculateNextOccurrenceDate:
    """Date arithmetic for each recurrence type."""

    def test_daily_with_interval(self):
        result = calculate_next_occurrence_date(MONDAY, RecurrenceRule(type="daily", interval=3))
        assert result == datetime(2024, 1, 18, 9, 0)

    def test_time_of_day_is_kept(self):
        start = datetime(2024, 1, 15, 17, 45)
        assert calculate_next_occurrence_date(start, RecurrenceRule(type="daily")) == datetime(2024, 1, 16, 17, 45)

    def test_monthly_clamps_to_leap_day(self):
        result = calculate_next_occurrence_date(datetime(2024, 1, 31), RecurrenceRule(type="monthly"))
        assert result == datetime(2024, 2, 29)

    def test_monthly_clamps_in_common_year(self):
        result = calculate_next_occurrence_date(datetime(2023, 1, 31), RecurrenceRule(type="monthly"))
        assert result == datetime(2023, 2, 28)

    def test_monthly_interval_crosses_year(self):
        result = calculate_next_occurrence_date(datetime(2023, 12, 31), RecurrenceRule(type="monthly", interval=2))
        assert result == datetime(2024, 2, 29)

    def test_yearly_from_leap_day_moves_to_march_first(self):
        result = calculate_next_occurrence_date(datetime(2024, 2, 29), RecurrenceRule(type="yearly"))
        assert result == datetime(2025, 3, 1)

    def test_yearly_from_leap_day_to_leap_year(self):
        result = calculate_next_occurrence_date(datetime(2024, 2, 29), RecurrenceRule(type="yearly", interval=4))
        assert result == datetime(2028, 2, 29)

    def test_weekly_on_explicit_day(self):
        result = calculate_next_occurrence_date(MONDAY, RecurrenceRule(type="weekly", days_of_week=[3]))
        assert result == datetime(2024, 1, 17, 9, 0)

    def test_weekly_same_weekday_is_a_week_later(self):
        result = calculate_next_occurrence_date(MONDAY, RecurrenceRule(type="weekly", days_of_week=[1]))
        assert result == datetime(2024, 1, 22, 9, 0)

    def test_weekly_without_days_uses_interval(self):
        result = calculate_next_occurrence_date(MONDAY, RecurrenceRule(type="weekly", interval=2))
        assert result == datetime(2024, 1, 29, 9, 0)

    def test_weekly_with_only_out_of_range_days(self):
        assert calculate_next_occurrence_date(MONDAY, RecurrenceRule(type="weekly", days_of_week=[9])) is None

    def test_weekdays_skip_weekend(self):
        friday = datetime(2024, 1, 19, 9, 0)
        assert calculate_next_occurrence_date(friday, RecurrenceRule(type="weekdays")) == datetime(2024, 1, 22, 9, 0)

    def test_weekends_jump_to_saturday(self):
        assert calculate_next_occurrence_date(MONDAY, RecurrenceRule(type="weekends")) == datetime(2024, 1, 20, 9, 0)

    def test_low_scan_bound_gives_up(self):
        rule = RecurrenceRule(type="weekly", days_of_week=[0])
        assert calculate_next_occurrence_date(MONDAY, rule, max_iterations=3) is None
        assert calculate_next_occurrence_date(MONDAY, rule) == datetime(2024, 1, 21, 9, 0)

    def test_date_after_end_date_is_refused(self):
        rule = RecurrenceRule(type="daily", end_date=datetime(2024, 1, 15))
        assert calculate_next_occurrence_date(MONDAY, rule) is None

    def test_later_time_on_end_day_is_refused(self):
        rule = RecurrenceRule(type="daily", end_date=datetime(2024, 1, 16, 0, 0))
        assert calculate_next_occurrence_date(MONDAY, rule) is None

    def test_date_equal_to_end_date_is_allowed(self):
        rule = RecurrenceRule(type="daily", end_date=datetime(2024, 1, 16, 9, 0))
        assert calculate_next_occurrence_date(MONDAY, rule) == datetime(2024, 1, 16, 9, 0)

    def test_end_date_in_other_offset_is_compared_as_instant(self):
        # 2024-01-20 00:00 at +05:00 is 2024-01-19 19:00 UTC
        plus_five = timezone(timedelta(hours=5))
        rule = RecurrenceRule(type="daily", end_date=datetime(2024, 1, 20, 0, 0, tzinfo=plus_five))

        current = datetime(2024, 1, 19, 12, 0, tzinfo=timezone.utc)
        assert calculate_next_occurrence_date(current, rule) is None

        earlier = datetime(2024, 1, 18, 12, 0, tzinfo=timezone.utc)
        assert calculate_next_occurrence_date(earlier, rule) == datetime(2024, 1, 19, 12, 0, tzinfo=timezone.utc)

    def test_naive_side_is_taken_as_utc(self):
        # 14:00 at +05:00 is the naive 09:00 candidate read as UTC
        plus_five = timezone(timedelta(hours=5))
        allowed = RecurrenceRule(type="daily", end_date=datetime(2024, 1, 16, 14, 0, tzinfo=plus_five))
        refused = RecurrenceRule(type="daily", end_date=datetime(2024, 1, 16, 13, 59, tzinfo=plus_five))

        assert calculate_next_occurrence_date(MONDAY, allowed) == datetime(2024, 1, 16, 9, 0)
        assert calculate_next_occurrence_date(MONDAY, refused) is None

    @pytest.mark.parametrize("rule", [
        RecurrenceRule(type="bogus"),
        RecurrenceRule(type=None),
        RecurrenceRule(type="daily", interval=0),
        RecurrenceRule(type="monthly", interval=-2),
    ])
    def test_uninterpretable_rules_yield_none(self, rule):
        assert calculate_next_occurrence_date(MONDAY, rule) is None

    @pytest.mark.parametrize("rule", [
        RecurrenceRule(type="daily"),
        RecurrenceRule(type="daily", interval=2),
        RecurrenceRule(type="weekly"),
        RecurrenceRule(type="weekly", days_of_week=[0, 6]),
        RecurrenceRule(type="weekdays"),
        RecurrenceRule(type="weekends"),
        RecurrenceRule(type="monthly"),
        RecurrenceRule(type="monthly", interval=3),
        RecurrenceRule(type="yearly"),
    ])
    def test_result_is_strictly_later(self, rule):
        start = datetime(2024, 1, 1, 8, 30)
        for offset in range(120):
            current = start + timedelta(days=offset)
            result = calculate_next_occurrence_date(current, rule)
            assert result is not None
            assert result > current


# =============================================================================
# should_generate_next_occurrence
# =============================================================================


class TestShouldGenerateNextOccurrence:
    """Continuation decision."""

    NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_open_recurring_reminder(self, make_reminder):
        assert should_generate_next_occurrence(make_reminder(), self.NOW) is True

    def test_completed_reminder_stops(self, make_reminder):
        assert should_generate_next_occurrence(make_reminder(completed=True), self.NOW) is False

    def test_non_recurring_reminder(self, make_reminder):
        assert should_generate_next_occurrence(make_reminder(is_recurring=False), self.NOW) is False

    def test_past_end_date_stops(self, make_reminder):
        reminder = make_reminder(recurring_end_date="2024-01-10")
        assert should_generate_next_occurrence(reminder, self.NOW) is False

    def test_end_date_later_today_continues(self, make_reminder):
        reminder = make_reminder(recurring_end_date=datetime(2024, 1, 15, 18, 0, tzinfo=timezone.utc))
        assert should_generate_next_occurrence(reminder, self.NOW) is True

    def test_end_date_earlier_today_stops(self, make_reminder):
        reminder = make_reminder(recurring_end_date=datetime(2024, 1, 15, tzinfo=timezone.utc))
        assert should_generate_next_occurrence(reminder, self.NOW) is False

    def test_unparseable_end_date_continues(self, make_reminder):
        reminder = make_reminder(recurring_end_date="not a date")
        assert should_generate_next_occurrence(reminder, self.NOW) is True

    def test_occurrence_limit_is_not_checked(self, make_reminder):
        reminder = make_reminder(recurring_end_after=1)
        assert should_generate_next_occurrence(reminder, self.NOW) is True


# =============================================================================
# generate_next_occurrence
# =============================================================================


class TestGenerateNextOccurrence:
    """Materializing a single next occurrence."""

    def test_first_occurrence_starts_the_group(self, make_reminder):
        reminder = make_reminder(id="first", recurring_group_id=None)
        occurrence = generate_next_occurrence(reminder)

        assert occurrence.recurring_group_id == "first"
        assert occurrence.id != "first"
        assert occurrence.due_date == datetime(2024, 1, 16, 9, 0, tzinfo=timezone.utc)

    def test_group_id_is_copied(self, make_reminder):
        reminder = make_reminder(id="third", recurring_group_id="first")
        assert generate_next_occurrence(reminder).recurring_group_id == "first"

    def test_fields_are_carried_over(self, make_reminder):
        reminder = make_reminder(
            title="Pay rent", priority="high", tags=["home"], location="Bank",
            due_time="09:00", repeat_pattern="monthly", has_notification=True,
            notification_timings=[{"type": "before", "value": 30}],
        )
        occurrence = generate_next_occurrence(reminder)

        assert occurrence.title == "Pay rent"
        assert occurrence.priority == reminder.priority
        assert occurrence.tags == ["home"]
        assert occurrence.location == "Bank"
        assert occurrence.due_time == "09:00"
        assert occurrence.notification_timings == reminder.notification_timings
        assert occurrence.is_recurring is True
        assert occurrence.completed is False
        assert occurrence.status == StatusEnum.PENDING

    def test_fresh_timestamps(self, make_reminder):
        now = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        occurrence = generate_next_occurrence(make_reminder(), now=now)
        assert occurrence.created_at == now
        assert occurrence.updated_at == now

    def test_input_is_not_modified(self, make_reminder):
        reminder = make_reminder(tags=["a"])
        before = reminder.model_dump()

        occurrence = generate_next_occurrence(reminder)
        occurrence.tags.append("b")

        assert reminder.model_dump() == before

    def test_completed_reminder_gives_none(self, make_reminder):
        assert generate_next_occurrence(make_reminder(completed=True)) is None

    def test_end_date_reached_gives_none(self, make_reminder):
        reminder = make_reminder(recurring_end_date=datetime(2024, 1, 15, 23, 0, tzinfo=timezone.utc))
        now = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert generate_next_occurrence(reminder, now=now) is None

    def test_missing_due_date_gives_none(self, make_reminder):
        assert generate_next_occurrence(make_reminder(due_date=None)) is None

    def test_occurrence_limit_does_not_stop_the_engine(self, make_reminder):
        # recurring_end_after needs the whole series and is enforced by recurring_service
        assert generate_next_occurrence(make_reminder(recurring_end_after=1)) is not None


# =============================================================================
# generate_occurrences
# =============================================================================


class TestGenerateOccurrences:
    """Batch generation."""

    def test_returns_requested_count_in_order(self, make_reminder):
        occurrences = generate_occurrences(make_reminder(repeat_pattern="weekly", repeat_days=[1, 3, 5]), 5)
        days = [o.due_date.day for o in occurrences]

        assert days == [17, 19, 22, 24, 26]
        assert all(a.due_date < b.due_date for a, b in zip(occurrences, occurrences[1:]))

    def test_every_item_belongs_to_the_series(self, make_reminder):
        occurrences = generate_occurrences(make_reminder(id="origin"), 4)

        assert {o.recurring_group_id for o in occurrences} == {"origin"}
        assert len({o.id for o in occurrences}) == 4

    def test_end_date_truncates(self, make_reminder):
        reminder = make_reminder(recurring_end_date="2024-01-20T00:00:00Z")
        occurrences = generate_occurrences(reminder, 10)

        # Jan 20 09:00 is after the end instant
        assert [o.due_date.day for o in occurrences] == [16, 17, 18, 19]
        end = datetime(2024, 1, 20, tzinfo=timezone.utc)
        assert all(o.due_date <= end for o in occurrences)

    def test_zero_count(self, make_reminder):
        assert generate_occurrences(make_reminder(), 0) == []

    def test_uninterpretable_rule(self, make_reminder):
        assert generate_occurrences(make_reminder(repeat_pattern="fortnightly"), 5) == []


# =============================================================================
# Descriptions and validation
# =============================================================================


class TestDescription:
    """Human-readable summaries."""

    @pytest.mark.parametrize("overrides, expected", [
        ({"repeat_pattern": "daily"}, "Daily"),
        ({"repeat_pattern": "daily", "custom_interval": 3}, "Every 3 days"),
        ({"repeat_pattern": "daily", "custom_interval": 1}, "Daily"),
        ({"repeat_pattern": "weekly"}, "Weekly"),
        ({"repeat_pattern": "weekly", "repeat_days": [5, 1, 3]}, "Weekly: Monday, Wednesday, Friday"),
        ({"repeat_pattern": "weekly", "repeat_days": [1], "custom_interval": 2}, "Weekly: Monday"),
        ({"repeat_pattern": "weekly", "custom_interval": 2}, "Every 2 weeks"),
        ({"repeat_pattern": "monthly", "custom_interval": 6}, "Every 6 months"),
        ({"repeat_pattern": "yearly"}, "Yearly"),
        ({"repeat_pattern": "weekdays"}, "Every weekday (Monday-Friday)"),
        ({"repeat_pattern": "weekends"}, "Every weekend (Saturday-Sunday)"),
        ({"repeat_pattern": "bogus"}, "Custom pattern"),
        ({"is_recurring": False}, "Not recurring"),
    ])
    def test_descriptions(self, make_reminder, overrides, expected):
        assert get_recurring_pattern_description(make_reminder(**overrides)) == expected

    def test_end_condition(self, make_reminder):
        assert get_end_condition(make_reminder()) == "never"
        assert get_end_condition(make_reminder(recurring_end_date="2024-05-01")) == "until_date"
        assert get_end_condition(make_reminder(recurring_end_after=4)) == "after_occurrences"


class TestValidation:
    """Structured validation results."""

    def test_unknown_type(self):
        result = validate_recurring_pattern(RecurrenceRule(type="bogus"))
        assert result.is_valid is False
        assert result.errors

    def test_zero_interval(self):
        result = validate_recurring_pattern(RecurrenceRule(type="daily", interval=0))
        assert result.is_valid is False
        assert "Interval must be greater than 0" in result.errors

    def test_missing_type(self):
        assert validate_recurring_pattern(RecurrenceRule()).errors == ["Pattern type is required"]

    def test_valid_rule(self):
        result = validate_recurring_pattern(RecurrenceRule(type="weekly", interval=2, days_of_week=[1]))
        assert result.is_valid is True
        assert result.errors == []

    def test_weekday_contents_are_not_checked(self):
        assert validate_recurring_pattern(RecurrenceRule(type="weekly", days_of_week=[9])).is_valid is True

    def test_reminder_level_checks(self, make_reminder):
        reminder = make_reminder(
            recurring_end_after=0,
            recurring_start_date=datetime(2024, 2, 1, tzinfo=timezone.utc),
            recurring_end_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        errors = validate_recurring_reminder(reminder).errors

        assert "End after occurrences must be at least 1" in errors
        assert "Recurring start date must be before end date" in errors

    def test_non_recurring_reminder_is_valid(self, make_reminder):
        assert validate_recurring_reminder(make_reminder(is_recurring=False, repeat_pattern="bogus")).is_valid
