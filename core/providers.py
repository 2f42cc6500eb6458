"""
Record providers: read accessors over the school application's collections.

The engines never talk to storage. Callers fetch full collections through a
provider, filter them, and pass the results in as arguments.
"""
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, Tuple

from django.core.exceptions import ValidationError

from .records import AttendanceRecord, Grade, Student, Subject

logger = logging.getLogger(__name__)


class SnapshotError(Exception):
    """Raised when a snapshot file cannot be read or parsed."""
    pass


class BaseRecordProvider(ABC):
    """
    Abstract read-only access to the persisted collections.

    Implementations return complete collections; no filtering contract
    beyond the class filter on ``list_students``.
    """

    @abstractmethod
    def list_grades(self) -> Tuple[Grade, ...]:
        pass

    @abstractmethod
    def list_students(self, class_id=None) -> Tuple[Student, ...]:
        pass

    @abstractmethod
    def list_subjects(self) -> Tuple[Subject, ...]:
        pass

    @abstractmethod
    def list_attendance(self) -> Tuple[AttendanceRecord, ...]:
        pass

    def get_student(self, student_id):
        """Find a student by id across all classes, or None."""
        for student in self.list_students():
            if student.id == student_id:
                return student
        return None


class SnapshotRecordProvider(BaseRecordProvider):
    """
    In-memory provider over an immutable snapshot.

    Collections are stored as tuples, so nothing handed out by the provider
    can be mutated behind the engine's back.
    """

    def __init__(
        self,
        students: Iterable[Student] = (),
        subjects: Iterable[Subject] = (),
        grades: Iterable[Grade] = (),
        attendance: Iterable[AttendanceRecord] = (),
    ):
        self._students = tuple(students)
        self._subjects = tuple(subjects)
        self._grades = tuple(grades)
        self._attendance = tuple(attendance)

    def list_grades(self):
        return self._grades

    def list_students(self, class_id=None):
        if class_id is None:
            return self._students
        return tuple(s for s in self._students if s.class_id == class_id)

    def list_subjects(self):
        return self._subjects

    def list_attendance(self):
        return self._attendance

    @classmethod
    def from_dict(cls, data: Dict):
        """
        Build a provider from the application's JSON export.

        Expected keys: ``students``, ``subjects``, ``grades``, ``attendance``
        (each a list of camelCase records). Missing collections are empty.

        Raises:
            ValidationError: if any record is malformed
        """
        try:
            students = [Student.from_dict(row) for row in data.get('students', [])]
            subjects = [Subject.from_dict(row) for row in data.get('subjects', [])]
            grades = [Grade.from_dict(row) for row in data.get('grades', [])]
            attendance = [AttendanceRecord.from_dict(row) for row in data.get('attendance', [])]
        except ValidationError as e:
            logger.error(f'Rejected snapshot record: {e}')
            raise

        logger.info(
            f'Loaded snapshot: {len(students)} students, {len(subjects)} subjects, '
            f'{len(grades)} grades, {len(attendance)} attendance records'
        )
        return cls(students, subjects, grades, attendance)

    @classmethod
    def from_json_file(cls, path):
        """Load a provider from a JSON export on disk."""
        path = Path(path)
        try:
            with open(path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SnapshotError(f'Could not read snapshot {path}: {e}') from e

        if not isinstance(data, dict):
            raise SnapshotError(f'Snapshot {path} must contain a JSON object')

        return cls.from_dict(data)
