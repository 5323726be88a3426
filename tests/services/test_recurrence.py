import threading
from datetime import date, timedelta

import pytest

from class_scheduling.constants.session import SessionStatus
from class_scheduling.core.errors import NotFound, ValidationError
from class_scheduling.schemas.class_session import (
    DailyPattern,
    MonthlyPattern,
    WeeklyPattern,
)
from class_scheduling.services.recurrence import RecurrenceExpander, expand_dates
from tests.utils.class_session import create_stored_session, session_create

FRIDAY = date(2025, 3, 7)


def test_weekly_fridays_for_four_weeks():
    dates, truncated = expand_dates(
        FRIDAY, WeeklyPattern(days_of_week=[5]), date(2025, 4, 4), max_occurrences=100
    )

    assert dates == [date(2025, 3, 14), date(2025, 3, 21), date(2025, 3, 28), date(2025, 4, 4)]
    assert all(d.weekday() == 4 for d in dates)
    assert all(later - earlier == timedelta(days=7) for earlier, later in zip(dates, dates[1:]))
    assert truncated is False


def test_weekly_with_several_weekdays():
    # Monday and Wednesday, starting from a Monday
    dates, _ = expand_dates(
        date(2025, 3, 3), WeeklyPattern(days_of_week=[1, 3]), date(2025, 3, 12), 100
    )
    assert dates == [date(2025, 3, 5), date(2025, 3, 10), date(2025, 3, 12)]


def test_weekly_without_weekdays_uses_interval():
    dates, _ = expand_dates(FRIDAY, WeeklyPattern(interval=2), date(2025, 4, 30), 100)
    assert dates == [date(2025, 3, 21), date(2025, 4, 4), date(2025, 4, 18)]


def test_daily_stops_at_pattern_end_date():
    pattern = DailyPattern(interval=3, end_date=date(2025, 3, 14))
    dates, _ = expand_dates(FRIDAY, pattern, date(2025, 12, 31), 100)
    assert dates == [date(2025, 3, 10), date(2025, 3, 13)]


def test_monthly_clamps_to_month_end_and_keeps_anchor_day():
    dates, _ = expand_dates(date(2025, 1, 31), MonthlyPattern(), date(2025, 5, 31), 100)
    assert dates == [date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30), date(2025, 5, 31)]


def test_monthly_interval():
    dates, _ = expand_dates(date(2025, 1, 15), MonthlyPattern(interval=3), date(2025, 12, 31), 100)
    assert dates == [date(2025, 4, 15), date(2025, 7, 15), date(2025, 10, 15)]


def test_series_is_capped():
    dates, truncated = expand_dates(FRIDAY, DailyPattern(), date(2026, 1, 1), max_occurrences=5)
    assert len(dates) == 5
    assert truncated is True


def test_expander_requires_recurring_base(db_session):
    base = create_stored_session(db_session)
    with pytest.raises(ValidationError):
        RecurrenceExpander().expand(base, date(2025, 4, 1))


def test_expander_clones_base_fields(db_session):
    base = create_stored_session(
        db_session,
        scheduled_date=FRIDAY,
        is_recurring=True,
        recurring_pattern={"type": "weekly", "interval": 1, "days_of_week": [5]},
        tags=["python"],
        class_price=250.0,
        status=SessionStatus.RESCHEDULED,
    )

    plans, _ = RecurrenceExpander().expand(base, date(2025, 3, 21))

    assert [p.scheduled_date for p in plans] == [date(2025, 3, 14), date(2025, 3, 21)]
    for plan in plans:
        assert plan.data["status"] == SessionStatus.SCHEDULED
        assert plan.data["instructor_id"] == "inst_1"
        assert plan.data["tags"] == ["python"]
        assert plan.data["class_price"] == 250.0
        assert "enrollments" not in plan.data
    # Each clone owns its own copy of mutable fields
    assert plans[0].data["tags"] is not plans[1].data["tags"]


def _recurring_base(service, db_session):
    return service.create_session(
        db_session,
        session_create(
            scheduled_date=FRIDAY,
            is_recurring=True,
            recurring_pattern={"type": "weekly", "days_of_week": [5]},
        ),
        actor_id="user_test",
    )


def test_series_reports_blocked_occurrences_and_continues(service, db_session):
    base = _recurring_base(service, db_session)
    blocker = service.create_session(
        db_session,
        session_create(
            scheduled_date=date(2025, 3, 21),
            start_time="09:30",
            end_time="10:30",
            venue="Room 202",
        ),
        actor_id="user_test",
    )

    result = service.generate_recurring_series(
        db_session, base.id, date(2025, 4, 4), actor_id="user_test"
    )

    assert (result.created, result.blocked, result.skipped) == (3, 1, 0)
    by_date = {o.scheduled_date: o for o in result.occurrences}
    blocked = by_date[date(2025, 3, 21)]
    assert blocked.status == "conflict"
    assert blocked.conflict.conflicting_session_id == blocker.id
    assert blocked.conflict.resource == "instructor"
    for day in (date(2025, 3, 14), date(2025, 3, 28), date(2025, 4, 4)):
        created = service.get_session(db_session, by_date[day].session_id)
        assert created.status == SessionStatus.SCHEDULED
        assert created.scheduled_date == day
        assert created.current_enrollments == 0


def test_cancelled_series_skips_remaining_occurrences(service, db_session):
    base = _recurring_base(service, db_session)
    cancel_event = threading.Event()
    cancel_event.set()

    result = service.generate_recurring_series(
        db_session, base.id, date(2025, 4, 4), actor_id="user_test", cancel_event=cancel_event
    )

    assert result.created == 0
    assert result.skipped == 4
    assert all(o.status == "skipped" for o in result.occurrences)


def test_series_for_missing_base(service, db_session):
    with pytest.raises(NotFound):
        service.generate_recurring_series(
            db_session, "cls_missing", date(2025, 4, 4), actor_id="user_test"
        )


def test_end_date_not_after_base_yields_no_occurrences(db_session):
    base = create_stored_session(
        db_session,
        scheduled_date=FRIDAY,
        is_recurring=True,
        recurring_pattern={"type": "daily", "interval": 1},
    )

    assert RecurrenceExpander().expand(base, FRIDAY) == ([], False)
    assert RecurrenceExpander().expand(base, date(2025, 3, 1)) == ([], False)


def test_series_ending_on_base_date_is_empty(service, db_session):
    base = _recurring_base(service, db_session)

    result = service.generate_recurring_series(
        db_session, base.id, FRIDAY, actor_id="user_test"
    )

    assert (result.created, result.blocked, result.skipped) == (0, 0, 0)
    assert result.occurrences == []
