import json
import os
import tempfile
from datetime import date, datetime, timedelta
from io import StringIO

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, override_settings

from core.choices import AttendanceStatus, AttendanceWindow
from core.records import AttendanceRecord
from .attendance import (
    AttendanceStats, attendance_overview, compute_attendance_stats,
    daily_class_summary, subtract_month, window_bounds,
)


def make_record(day, status=AttendanceStatus.PRESENT, student_id='s1', class_id='6A'):
    return AttendanceRecord(
        id='',
        student_id=student_id,
        class_id=class_id,
        date=day,
        status=status,
        recorded_by='t1',
    )


NOW = date(2024, 11, 15)


class AttendanceStatsTest(SimpleTestCase):
    """Tests for compute_attendance_stats."""

    def test_counts_and_rate(self):
        records = [
            make_record(NOW, AttendanceStatus.PRESENT),
            make_record(NOW - timedelta(days=1), AttendanceStatus.PRESENT),
            make_record(NOW - timedelta(days=2), AttendanceStatus.ABSENT),
            make_record(NOW - timedelta(days=3), AttendanceStatus.LATE),
        ]
        stats = compute_attendance_stats(records, 'week', NOW)
        self.assertEqual(
            (stats.total, stats.present, stats.absent, stats.late, stats.excused),
            (4, 2, 1, 1, 0),
        )
        self.assertEqual(stats.presence_rate, 50)

    def test_week_boundary_is_inclusive(self):
        records = [
            make_record(NOW - timedelta(days=7)),
            make_record(NOW - timedelta(days=8)),
        ]
        stats = compute_attendance_stats(records, AttendanceWindow.WEEK, NOW)
        self.assertEqual(stats.total, 1)
        self.assertEqual(stats.start_date, date(2024, 11, 8))

    def test_future_records_excluded(self):
        stats = compute_attendance_stats([make_record(NOW + timedelta(days=1))], 'week', NOW)
        self.assertEqual(stats.total, 0)

    def test_empty_window_rate_is_zero(self):
        stats = compute_attendance_stats([], 'month', NOW)
        self.assertEqual(stats.total, 0)
        self.assertEqual(stats.presence_rate, 0)

    def test_month_window(self):
        records = [
            make_record(date(2024, 10, 15), AttendanceStatus.EXCUSED),
            make_record(date(2024, 10, 14), AttendanceStatus.ABSENT),
            make_record(date(2024, 11, 1)),
        ]
        stats = compute_attendance_stats(records, 'month', NOW)
        self.assertEqual(stats.total, 2)
        self.assertEqual(stats.excused, 1)
        self.assertEqual(stats.window, AttendanceWindow.MONTH)

    def test_datetime_now(self):
        records = [make_record(date(2024, 11, 8))]
        stats = compute_attendance_stats(records, 'week', datetime(2024, 11, 15, 16, 45))
        self.assertEqual(stats.total, 1)

    def test_presence_rate_rounds_half_up(self):
        stats = AttendanceStats(total=8, present=1, absent=7, late=0, excused=0)
        self.assertEqual(stats.presence_rate, 13)
        stats = AttendanceStats(total=3, present=2, absent=1, late=0, excused=0)
        self.assertEqual(stats.presence_rate, 67)

    def test_unknown_window_rejected(self):
        with self.assertRaises(ValidationError):
            compute_attendance_stats([], 'year', NOW)

    def test_window_bounds_rejects_unknown_window(self):
        with self.assertRaises(ValidationError):
            window_bounds('semester', NOW)

    @override_settings(GRADEBOOK_ATTENDANCE_WEEK_DAYS=5)
    def test_week_length_follows_settings(self):
        start, end = window_bounds('week', NOW)
        self.assertEqual(start, date(2024, 11, 10))
        self.assertEqual(end, NOW)

    def test_to_dict(self):
        stats = compute_attendance_stats([make_record(NOW)], 'week', NOW)
        data = stats.to_dict()
        self.assertEqual(data['window'], 'week')
        self.assertEqual(data['start_date'], '2024-11-08')
        self.assertEqual(data['presence_rate'], 100)


class SubtractMonthTest(SimpleTestCase):
    """Tests for calendar month subtraction."""

    def test_regular_day(self):
        self.assertEqual(subtract_month(date(2024, 11, 15)), date(2024, 10, 15))

    def test_january_wraps_year(self):
        self.assertEqual(subtract_month(date(2024, 1, 10)), date(2023, 12, 10))

    def test_clamps_to_end_of_shorter_month(self):
        self.assertEqual(subtract_month(date(2024, 3, 31)), date(2024, 2, 29))
        self.assertEqual(subtract_month(date(2023, 3, 31)), date(2023, 2, 28))
        self.assertEqual(subtract_month(date(2024, 5, 31)), date(2024, 4, 30))


class AttendanceOverviewTest(SimpleTestCase):
    """Tests for attendance_overview and daily_class_summary."""

    def setUp(self):
        self.records = [
            make_record(NOW, AttendanceStatus.PRESENT, student_id='s1'),
            make_record(date(2024, 10, 20), AttendanceStatus.ABSENT, student_id='s1'),
            make_record(NOW, AttendanceStatus.LATE, student_id='s2'),
            make_record(NOW, AttendanceStatus.ABSENT, student_id='s3', class_id='5B'),
        ]

    def test_overview_per_student(self):
        overview = attendance_overview(self.records, ['s1', 's2'], NOW)
        self.assertEqual(set(overview), {'s1', 's2'})
        self.assertEqual(overview['s1']['week'].total, 1)
        self.assertEqual(overview['s1']['month'].total, 2)
        self.assertEqual(overview['s1']['month'].presence_rate, 50)
        self.assertEqual(overview['s2']['week'].late, 1)

    def test_overview_student_without_records(self):
        overview = attendance_overview(self.records, ['s7'], NOW)
        self.assertEqual(overview['s7']['week'].total, 0)

    def test_daily_class_summary(self):
        summary = daily_class_summary(self.records, '6A', '2024-11-15')
        self.assertEqual((summary.total, summary.present, summary.late), (2, 1, 1))
        self.assertEqual(summary.start_date, NOW)


class AttendanceStatsCommandTest(SimpleTestCase):
    """Tests for the attendance_stats management command."""

    def setUp(self):
        snapshot = {
            'students': [{'id': 's1', 'classId': '6A', 'firstName': 'Alice', 'lastName': 'Martin'}],
            'attendance': [
                {'id': 'a1', 'studentId': 's1', 'classId': '6A', 'date': '2024-11-14',
                 'status': 'present', 'recordedBy': 't1'},
                {'id': 'a2', 'studentId': 's1', 'classId': '6A', 'date': '2024-11-12',
                 'status': 'absent', 'reason': 'Malade', 'recordedBy': 't1'},
                {'id': 'a3', 'studentId': 's1', 'classId': '6A', 'date': '2024-10-20',
                 'status': 'present', 'recordedBy': 't1'},
            ],
        }
        fd, self.path = tempfile.mkstemp(suffix='.json')
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(snapshot, f)

    def tearDown(self):
        os.remove(self.path)

    def test_week_json(self):
        out = StringIO()
        call_command('attendance_stats', self.path, '--student', 's1', '--now', '2024-11-15',
                     '--format', 'json', stdout=out)
        data = json.loads(out.getvalue())
        self.assertEqual(data['total'], 2)
        self.assertEqual(data['presence_rate'], 50)
        self.assertEqual(data['student_id'], 's1')

    def test_month_table(self):
        out = StringIO()
        call_command('attendance_stats', self.path, '--student', 's1', '--now', '2024-11-15',
                     '--window', 'month', stdout=out)
        output = out.getvalue()
        self.assertIn('Alice Martin', output)
        self.assertIn('Present: 2/3', output)
        self.assertIn('Presence rate: 67%', output)

    def test_unknown_student(self):
        with self.assertRaises(CommandError):
            call_command('attendance_stats', self.path, '--student', 'nobody', stdout=StringIO())

    def test_invalid_now(self):
        with self.assertRaises(CommandError):
            call_command('attendance_stats', self.path, '--student', 's1', '--now', 'yesterday',
                         stdout=StringIO())
