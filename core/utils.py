from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.core.exceptions import ValidationError
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime


def to_decimal(value, field_name='value'):
    """
    Convert a number coming from a snapshot into a Decimal.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.

    Raises:
        ValidationError: if the value is missing or not numeric
    """
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValidationError(f'{field_name} must be a number, got {value!r}')
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field_name} must be a number, got {value!r}')
    if not result.is_finite():
        raise ValidationError(f'{field_name} must be finite, got {value!r}')
    return result


def quantize(value, places=2):
    """Round a Decimal half-up to a fixed number of places for display."""
    exponent = Decimal(1).scaleb(-places)
    return Decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def to_date(value, field_name='date'):
    """
    Coerce a snapshot date into a datetime.date.

    Accepts date/datetime objects and ISO strings ('2024-10-07' or
    '2024-10-07T08:30:00Z'). Aware datetimes are converted to local time first.
    """
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        parsed = None
        try:
            parsed = parse_date(value)
            if parsed is None:
                parsed_dt = parse_datetime(value)
                if parsed_dt is not None:
                    return to_date(parsed_dt, field_name)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f'{field_name} is not a valid date: {value!r}')


def parse_choice(choices, value, field_name):
    """Look up a TextChoices member by its stored value."""
    try:
        return choices(value)
    except ValueError:
        allowed = ', '.join(choices.values)
        raise ValidationError(f'{field_name} must be one of: {allowed} (got {value!r})')
