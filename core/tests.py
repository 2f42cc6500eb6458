import json
import os
import tempfile
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, override_settings

from core.choices import AssessmentType, AttendanceStatus, Term
from core.providers import SnapshotError, SnapshotRecordProvider
from core.records import AttendanceRecord, Grade, Student, Subject
from core.utils import quantize, to_date, to_decimal


GRADE_ROW = {
    'id': 'g1', 'studentId': 's1', 'subjectId': 'math', 'classId': '6A',
    'value': 13.5, 'maxValue': 20, 'type': 'composition', 'date': '2024-10-07',
    'term': 'trimestre2', 'teacherId': 't1', 'comment': 'Bon travail',
}


class ConversionUtilsTest(SimpleTestCase):
    """Tests for the snapshot conversion helpers."""

    def test_to_decimal_from_float_keeps_digits(self):
        self.assertEqual(to_decimal(0.1), Decimal('0.1'))

    def test_to_decimal_rejects_non_numbers(self):
        for value in (None, 'abc', True, float('nan')):
            with self.assertRaises(ValidationError):
                to_decimal(value)

    def test_quantize_rounds_half_up(self):
        self.assertEqual(str(quantize(Decimal('15.625'))), '15.63')
        self.assertEqual(str(quantize(Decimal('2.5'), 0)), '3')

    def test_to_date_accepts_iso_strings(self):
        self.assertEqual(to_date('2024-10-07'), date(2024, 10, 7))
        self.assertEqual(to_date('2024-10-07T08:30:00'), date(2024, 10, 7))

    @override_settings(TIME_ZONE='Africa/Dakar')
    def test_to_date_aware_datetime_uses_local_date(self):
        value = datetime(2024, 10, 7, 23, 30, tzinfo=dt_timezone.utc)
        self.assertEqual(to_date(value), date(2024, 10, 7))

    def test_to_date_rejects_garbage(self):
        with self.assertRaises(ValidationError):
            to_date('07/10/2024')


class RecordIngestionTest(SimpleTestCase):
    """Tests for building records from the JSON export."""

    def test_grade_from_dict(self):
        grade = Grade.from_dict(GRADE_ROW)
        self.assertEqual(grade.value, Decimal('13.5'))
        self.assertEqual(grade.max_value, Decimal('20'))
        self.assertEqual(grade.type, AssessmentType.COMPOSITE)
        self.assertEqual(grade.term, Term.T2)
        self.assertEqual(grade.date, date(2024, 10, 7))
        self.assertEqual(str(grade), '13.5/20')

    def test_grade_zero_maximum_rejected(self):
        with self.assertRaises(ValidationError):
            Grade.from_dict(dict(GRADE_ROW, maxValue=0))

    def test_grade_unknown_term_rejected(self):
        with self.assertRaises(ValidationError):
            Grade.from_dict(dict(GRADE_ROW, term='T4'))

    def test_grade_missing_field_rejected(self):
        row = dict(GRADE_ROW)
        del row['studentId']
        with self.assertRaises(ValidationError):
            Grade.from_dict(row)

    def test_subject_coefficient_must_be_positive_integer(self):
        row = {'id': 'math', 'name': 'Maths', 'code': 'MATH', 'coefficient': 0}
        with self.assertRaises(ValidationError):
            Subject.from_dict(row)
        with self.assertRaises(ValidationError):
            Subject.from_dict(dict(row, coefficient=1.5))
        self.assertEqual(Subject.from_dict(dict(row, coefficient=3.0)).coefficient, 3)

    def test_attendance_from_dict(self):
        record = AttendanceRecord.from_dict({
            'id': 'a1', 'studentId': 's1', 'classId': '6A', 'date': '2024-11-12',
            'status': 'excused', 'reason': 'Rendez-vous médical', 'recordedBy': 't1',
        })
        self.assertEqual(record.status, AttendanceStatus.EXCUSED)
        self.assertEqual(record.reason, 'Rendez-vous médical')

    def test_attendance_unknown_status_rejected(self):
        with self.assertRaises(ValidationError):
            AttendanceRecord.from_dict({'studentId': 's1', 'date': '2024-11-12', 'status': 'sick'})

    def test_student_full_name(self):
        student = Student.from_dict({'id': 's1', 'classId': '6A', 'firstName': 'Awa', 'lastName': 'Fall'})
        self.assertEqual(student.full_name, 'Awa Fall')
        self.assertEqual(Student(id='s2', class_id='6A').full_name, 's2')


class SnapshotRecordProviderTest(SimpleTestCase):
    """Tests for SnapshotRecordProvider."""

    def setUp(self):
        self.data = {
            'students': [
                {'id': 's1', 'classId': '6A'},
                {'id': 's2', 'classId': '5B'},
            ],
            'subjects': [{'id': 'math', 'name': 'Maths', 'code': 'MATH', 'coefficient': 4}],
            'grades': [GRADE_ROW],
        }

    def test_collections_are_immutable_tuples(self):
        provider = SnapshotRecordProvider.from_dict(self.data)
        self.assertIsInstance(provider.list_grades(), tuple)
        self.assertEqual(len(provider.list_subjects()), 1)
        self.assertEqual(provider.list_attendance(), ())

    def test_list_students_by_class(self):
        provider = SnapshotRecordProvider.from_dict(self.data)
        self.assertEqual([s.id for s in provider.list_students('6A')], ['s1'])
        self.assertEqual(len(provider.list_students()), 2)
        self.assertEqual(provider.get_student('s2').class_id, '5B')
        self.assertIsNone(provider.get_student('s9'))

    def test_from_json_file(self):
        fd, path = tempfile.mkstemp(suffix='.json')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self.data, f)
            provider = SnapshotRecordProvider.from_json_file(path)
            self.assertEqual(len(provider.list_students()), 2)
        finally:
            os.remove(path)

    def test_from_json_file_errors(self):
        with self.assertRaises(SnapshotError):
            SnapshotRecordProvider.from_json_file('/nonexistent/export.json')

        fd, path = tempfile.mkstemp(suffix='.json')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write('[1, 2, 3]')
            with self.assertRaises(SnapshotError):
                SnapshotRecordProvider.from_json_file(path)
        finally:
            os.remove(path)
