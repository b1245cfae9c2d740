"""
Dose Clock
Pure computation of expected dose instances for a medication schedule.

Nothing in this module touches storage or reads the wall clock; every
function is a pure function of its arguments, so recomputing is always safe.
"""

from typing import Iterable, Iterator, List, Optional, Tuple, Union
from dataclasses import dataclass
from datetime import datetime, date, time, timedelta

from exceptions import ValidationError


AS_NEEDED = "AS_NEEDED"

# Doses per day implied by each frequency category
FREQUENCY_DOSES_PER_DAY = {
    "ONCE_DAILY": 1,
    "TWICE_DAILY": 2,
    "THRICE_DAILY": 3,
    "FOUR_TIMES_DAILY": 4,
    AS_NEEDED: 0,
}

_TIME_FORMATS = ("%H:%M", "%H:%M:%S")


@dataclass(frozen=True)
class SchedulePlan:
    """Immutable snapshot of a schedule's recurrence definition"""
    id: int
    patient_id: str
    medication_name: str
    dosage: str
    frequency: str
    times: Tuple[str, ...]
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def is_as_needed(self) -> bool:
        return is_as_needed(self.frequency)


@dataclass(frozen=True)
class ExpectedDose:
    """One concrete expected administration event"""
    schedule_id: int
    time_of_day: str        # "HH:MM"
    dose_date: date
    scheduled_at: datetime

    @property
    def key(self) -> Tuple[int, str, date]:
        return (self.schedule_id, self.time_of_day, self.dose_date)


def is_as_needed(frequency: Union[str, object]) -> bool:
    return str(getattr(frequency, "value", frequency)) == AS_NEEDED


def doses_per_day(frequency: Union[str, object]) -> int:
    return FREQUENCY_DOSES_PER_DAY.get(str(getattr(frequency, "value", frequency)), 0)


def parse_time_of_day(value: Union[str, time]) -> time:
    """Parse 'HH:MM' (or 'HH:MM:SS') into a time, dropping seconds"""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if isinstance(value, str):
        for fmt in _TIME_FORMATS:
            try:
                return datetime.strptime(value.strip(), fmt).time().replace(second=0)
            except ValueError:
                continue
    raise ValidationError(f"Cannot parse time of day: {value!r}", field="times")


def format_time_of_day(value: Union[str, time]) -> str:
    return parse_time_of_day(value).strftime("%H:%M")


def normalize_times(values: Optional[Iterable[Union[str, time]]]) -> List[str]:
    """Canonical, de-duplicated, ascending list of 'HH:MM' strings"""
    return sorted({format_time_of_day(v) for v in (values or [])})


def parse_date(value: Union[str, date, datetime, None], field: str = "date") -> date:
    """Accept a date, a datetime or an ISO-8601 string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    raise ValidationError(f"Cannot parse {field}: {value!r}", field=field)


def end_of_day(day: date) -> datetime:
    """Exclusive upper bound of a calendar day"""
    return datetime.combine(day + timedelta(days=1), time.min)


def _at(day: date, t: time, like: datetime) -> datetime:
    return datetime.combine(day, t).replace(tzinfo=like.tzinfo)


def expected_doses(
    schedule,
    window_start: datetime,
    window_end: datetime,
    now: Optional[datetime] = None
) -> Iterator[ExpectedDose]:
    """
    Expected dose instances of a schedule within a time window.

    Every occurrence of each time of day in [max(window_start, now), window_end)
    is produced, in chronological order. A time that has already passed
    today therefore rolls over to tomorrow.

    Args:
        schedule: Anything exposing id, frequency, times, start_date, end_date
        window_start: Inclusive lower bound
        window_end: Exclusive upper bound
        now: Current time; defaults to window_start

    Yields:
        ExpectedDose instances
    """
    if is_as_needed(schedule.frequency) or not schedule.times:
        return

    now = now or window_start
    if window_end < now:
        return

    lower = max(window_start, now)
    upper = window_end

    start_date = getattr(schedule, "start_date", None)
    end_date = getattr(schedule, "end_date", None)
    if start_date:
        lower = max(lower, _at(start_date, time.min, lower))
    if end_date:
        upper = min(upper, end_of_day(end_date).replace(tzinfo=upper.tzinfo))
    if lower >= upper:
        return

    times = sorted(parse_time_of_day(t) for t in schedule.times)

    day = lower.date()
    while day <= upper.date():
        for t in times:
            scheduled_at = _at(day, t, lower)
            if lower <= scheduled_at < upper:
                yield ExpectedDose(
                    schedule_id=schedule.id,
                    time_of_day=t.strftime("%H:%M"),
                    dose_date=day,
                    scheduled_at=scheduled_at,
                )
        day += timedelta(days=1)


def active_days(schedule, window_start: datetime, window_end: datetime) -> int:
    """
    Calendar days on which the schedule is active inside the window.

    Both the first and the last calendar day of the window count.
    """
    first = window_start.date()
    last = window_end.date()

    start_date = getattr(schedule, "start_date", None)
    end_date = getattr(schedule, "end_date", None)
    if start_date:
        first = max(first, start_date)
    if end_date:
        last = min(last, end_date)

    return max(0, (last - first).days + 1)


def active_date_span(schedule, window_start: datetime, window_end: datetime) -> Optional[Tuple[date, date]]:
    """(first, last) active calendar dates inside the window, or None"""
    if active_days(schedule, window_start, window_end) == 0:
        return None
    first = window_start.date()
    last = window_end.date()
    if getattr(schedule, "start_date", None):
        first = max(first, schedule.start_date)
    if getattr(schedule, "end_date", None):
        last = min(last, schedule.end_date)
    return first, last
