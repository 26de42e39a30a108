import re
from datetime import date, datetime, time

from medicare.core.errors import ValidationError
from medicare.models.doctor import DAY_NAMES

CLOCK_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


def is_valid_clock(value: str | None) -> bool:
    return bool(value) and CLOCK_PATTERN.match(value) is not None


def validate_clock(value: str | None, field: str = 'Time') -> str:
    if not is_valid_clock(value):
        raise ValidationError(f'{field} must be in HH:MM format')
    return value


def clock_minutes(value: str) -> int:
    hours, minutes = value.split(':')
    return int(hours) * 60 + int(minutes)


def format_clock(total_minutes: int) -> str:
    return f'{total_minutes // 60:02d}:{total_minutes % 60:02d}'


def day_name(day: date) -> str:
    return DAY_NAMES[day.weekday()]


def combine(day: date, clock: str) -> datetime:
    hours, minutes = clock.split(':')
    return datetime.combine(day, time(int(hours), int(minutes)))


def human_date(day: date) -> str:
    return f'{day:%B} {day.day}, {day.year}'
