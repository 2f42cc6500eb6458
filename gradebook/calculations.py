"""
Score normalization, averaging and appreciation lookup.

All functions are pure: they read their arguments and return new values.
Numbers are Decimals end to end; nothing is rounded here; rounding happens
only when a report is prepared for display.
"""
import logging
from collections.abc import Mapping
from decimal import Decimal

from django.core.exceptions import ValidationError

from core.choices import Appreciation
from core.utils import to_decimal
from . import config

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

# Inclusive lower bounds, checked top-down; anything below the last band is
# INSUFFICIENT.
APPRECIATION_BANDS = (
    (Decimal('16'), Appreciation.VERY_GOOD),
    (Decimal('14'), Appreciation.GOOD),
    (Decimal('12'), Appreciation.FAIRLY_GOOD),
    (Decimal('10'), Appreciation.PASSING),
)


def normalize_score(value, max_value):
    """
    Rescale a raw mark onto the common scale (0-20 by default).

    Raises:
        ValidationError: if max_value is not positive
    """
    value = to_decimal(value, 'value')
    max_value = to_decimal(max_value, 'max_value')
    if max_value <= 0:
        raise ValidationError(f'Cannot normalize {value}/{max_value}: maximum must be positive')
    return value / max_value * Decimal(config.SCORE_SCALE)


def compute_subject_average(grades):
    """
    Arithmetic mean of the normalized grades for one subject and term.

    Assessment type carries no weight: a devoir counts as much as an exam.
    Returns 0 for an empty list.
    """
    grades = list(grades)
    if not grades:
        return ZERO

    total = sum((normalize_score(g.value, g.max_value) for g in grades), ZERO)
    return total / len(grades)


def _average_and_coefficient(entry):
    if isinstance(entry, Mapping):
        return entry['average'], entry['coefficient']
    if isinstance(entry, (tuple, list)):
        average, coefficient = entry
        return average, coefficient
    return entry.average, entry.coefficient


def compute_general_average(subject_averages):
    """
    Coefficient-weighted mean of subject averages.

    Every registered subject counts, including ones averaging 0 because no
    grade was recorded yet. Accepts SubjectAverage objects, mappings with
    'average'/'coefficient' keys, or (average, coefficient) pairs.

    Returns 0 when the coefficients sum to 0.

    Raises:
        ValidationError: on a negative coefficient
    """
    weighted_total = ZERO
    total_coefficients = ZERO

    for entry in subject_averages:
        average, coefficient = _average_and_coefficient(entry)
        average = to_decimal(average, 'average')
        coefficient = to_decimal(coefficient, 'coefficient')
        if coefficient < 0:
            raise ValidationError(f'Coefficient cannot be negative, got {coefficient}')
        weighted_total += average * coefficient
        total_coefficients += coefficient

    if total_coefficients == 0:
        return ZERO
    return weighted_total / total_coefficients


def classify_appreciation(average):
    """Map an average on the 0-20 scale to its appreciation label."""
    average = to_decimal(average, 'average')
    for lower_bound, appreciation in APPRECIATION_BANDS:
        if average >= lower_bound:
            return appreciation
    return Appreciation.INSUFFICIENT
