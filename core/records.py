"""
Read-only record snapshots consumed by the gradebook and attendance engines.

Records are owned by the school application's storage; the engines only
receive immutable copies. Every record can be built from the application's
JSON export (camelCase keys) through ``from_dict``, which validates the record
before returning it so malformed rows are rejected at ingestion.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError

from .choices import AssessmentType, AttendanceStatus, Term
from .utils import parse_choice, to_date, to_decimal


def _require(data, key, record_name):
    if key not in data or data[key] in (None, ''):
        raise ValidationError(f'{record_name} is missing required field "{key}"')
    return data[key]


@dataclass(frozen=True)
class Student:
    id: str
    class_id: str
    first_name: str = ''
    last_name: str = ''
    student_number: str = ''
    is_active: bool = True

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'.strip() or self.id

    def __str__(self):
        return self.full_name

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(_require(data, 'id', 'Student')),
            class_id=str(_require(data, 'classId', 'Student')),
            first_name=data.get('firstName', ''),
            last_name=data.get('lastName', ''),
            student_number=data.get('studentNumber', ''),
            is_active=data.get('isActive', True),
        )


@dataclass(frozen=True)
class Subject:
    id: str
    name: str
    code: str
    coefficient: int
    description: str = ''

    def __str__(self):
        return f'{self.name} ({self.code})'

    def clean(self):
        """Coefficients are positive integers."""
        if isinstance(self.coefficient, bool) or not isinstance(self.coefficient, int):
            raise ValidationError(
                f'Coefficient for {self.code} must be an integer, got {self.coefficient!r}'
            )
        if self.coefficient <= 0:
            raise ValidationError(
                f'Coefficient for {self.code} must be positive, got {self.coefficient}'
            )

    @classmethod
    def from_dict(cls, data):
        coefficient = _require(data, 'coefficient', 'Subject')
        if isinstance(coefficient, float) and coefficient.is_integer():
            coefficient = int(coefficient)
        subject = cls(
            id=str(_require(data, 'id', 'Subject')),
            name=_require(data, 'name', 'Subject'),
            code=data.get('code', ''),
            coefficient=coefficient,
            description=data.get('description') or '',
        )
        subject.clean()
        return subject


@dataclass(frozen=True)
class Grade:
    id: str
    student_id: str
    subject_id: str
    class_id: str
    value: Decimal
    max_value: Decimal
    type: AssessmentType
    date: date
    term: Term
    teacher_id: str = ''
    comment: str = ''

    def __str__(self):
        return f'{self.value}/{self.max_value}'

    def clean(self):
        """Reject grades that cannot be put on the common scale."""
        if self.max_value <= 0:
            raise ValidationError(
                f'Grade {self.id}: maximum value must be positive, got {self.max_value}'
            )
        if self.value < 0:
            raise ValidationError(
                f'Grade {self.id}: value cannot be negative, got {self.value}'
            )

    @classmethod
    def from_dict(cls, data):
        grade_id = str(data.get('id', ''))
        grade = cls(
            id=grade_id,
            student_id=str(_require(data, 'studentId', 'Grade')),
            subject_id=str(_require(data, 'subjectId', 'Grade')),
            class_id=str(data.get('classId', '')),
            value=to_decimal(_require(data, 'value', 'Grade'), 'value'),
            max_value=to_decimal(_require(data, 'maxValue', 'Grade'), 'maxValue'),
            type=parse_choice(AssessmentType, _require(data, 'type', 'Grade'), 'type'),
            date=to_date(_require(data, 'date', 'Grade')),
            term=parse_choice(Term, _require(data, 'term', 'Grade'), 'term'),
            teacher_id=str(data.get('teacherId', '')),
            comment=data.get('comment') or '',
        )
        grade.clean()
        return grade


@dataclass(frozen=True)
class AttendanceRecord:
    id: str
    student_id: str
    class_id: str
    date: date
    status: AttendanceStatus
    reason: Optional[str] = None
    recorded_by: str = ''

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data.get('id', '')),
            student_id=str(_require(data, 'studentId', 'Attendance')),
            class_id=str(data.get('classId', '')),
            date=to_date(_require(data, 'date', 'Attendance')),
            status=parse_choice(AttendanceStatus, _require(data, 'status', 'Attendance'), 'status'),
            reason=data.get('reason'),
            recorded_by=str(data.get('recordedBy', '')),
        )
