# class_scheduling/services/recurrence.py
"""
Expansion of a recurring class into concrete occurrence dates.
"""
import copy
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from pydantic import TypeAdapter

from class_scheduling.constants.session import RecurrenceType, SessionStatus
from class_scheduling.core.config import settings
from class_scheduling.core.errors import ValidationError
from class_scheduling.models.class_session import ClassSession
from class_scheduling.schemas.class_session import RecurringPattern
from class_scheduling.utils.time_utils import sunday_based_weekday

logger = logging.getLogger(__name__)

_pattern_adapter = TypeAdapter(RecurringPattern)

# Fields every occurrence inherits from the base class
CLONED_FIELDS = (
    "course_id",
    "instructor_id",
    "class_name",
    "description",
    "start_time",
    "end_time",
    "duration",
    "venue",
    "address",
    "capacity",
    "max_enrollments",
    "is_recurring",
    "recurring_pattern",
    "class_notes",
    "summary",
    "objectives",
    "prerequisites",
    "required_materials",
    "class_price",
    "currency",
    "tags",
)


@dataclass
class OccurrencePlan:
    scheduled_date: date
    data: dict


def parse_pattern(raw) -> RecurringPattern:
    try:
        return _pattern_adapter.validate_python(raw)
    except ValueError as e:
        raise ValidationError(
            "Class has an invalid recurring pattern", details={"error": str(e)}
        ) from e


def next_occurrence(current: date, pattern: RecurringPattern, anchor: date, index: int) -> date:
    """
    Date of occurrence number `index` (1-based) following `current`.

    Monthly steps are counted from the anchor so a class on the 31st lands
    on the last day of shorter months and returns to the 31st afterwards.
    """
    if pattern.type == RecurrenceType.DAILY.value:
        return current + timedelta(days=pattern.interval)

    if pattern.type == RecurrenceType.WEEKLY.value:
        if pattern.days_of_week:
            # Next listed weekday within the following seven days
            for offset in range(1, 8):
                candidate = current + timedelta(days=offset)
                if sunday_based_weekday(candidate) in pattern.days_of_week:
                    return candidate
        return current + timedelta(weeks=pattern.interval)

    if pattern.type == RecurrenceType.MONTHLY.value:
        return anchor + relativedelta(months=pattern.interval * index)

    raise ValidationError(f"Unsupported recurrence type '{pattern.type}'")


def expand_dates(
    base_date: date,
    pattern: RecurringPattern,
    end_date: date,
    max_occurrences: int,
) -> Tuple[List[date], bool]:
    """
    Occurrence dates strictly after base_date and on or before the effective end.

    The effective end is the earlier of end_date and the pattern's own end date.

    Returns:
        (dates, truncated) where truncated is True when max_occurrences cut the series short
    """
    effective_end = end_date
    if pattern.end_date is not None and pattern.end_date < effective_end:
        effective_end = pattern.end_date

    dates: List[date] = []
    current = base_date
    index = 0
    while True:
        index += 1
        current = next_occurrence(current, pattern, base_date, index)
        if current > effective_end:
            return dates, False
        if len(dates) >= max_occurrences:
            return dates, True
        dates.append(current)


class RecurrenceExpander:
    def __init__(self, max_occurrences: Optional[int] = None):
        self.max_occurrences = max_occurrences or settings.MAX_SERIES_OCCURRENCES

    def expand(self, base: ClassSession, end_date: date) -> Tuple[List[OccurrencePlan], bool]:
        """
        Plan one clone of `base` per occurrence date.

        Clones start in scheduled status with no enrollments, waitlist or attendance.

        Raises:
            ValidationError: If the base is not recurring
        """
        if not base.is_recurring or not base.recurring_pattern:
            raise ValidationError(
                "Class is not configured for recurrence", details={"session_id": base.id}
            )
        if end_date <= base.scheduled_date:
            # Nothing falls strictly after the base date
            return [], False

        pattern = parse_pattern(base.recurring_pattern)
        dates, truncated = expand_dates(
            base.scheduled_date, pattern, end_date, self.max_occurrences
        )
        if truncated:
            logger.warning(
                f"Series for {base.id} truncated at {self.max_occurrences} occurrences"
            )

        template = {name: getattr(base, name) for name in CLONED_FIELDS}
        plans = [
            OccurrencePlan(
                scheduled_date=day,
                data={**copy.deepcopy(template), "scheduled_date": day, "status": SessionStatus.SCHEDULED},
            )
            for day in dates
        ]
        return plans, truncated
