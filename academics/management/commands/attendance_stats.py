"""
Management command to print a student's attendance over the last week or month.

Usage:
    python manage.py attendance_stats export.json --student s42
    python manage.py attendance_stats export.json --student s42 --window month --now 2024-11-15
"""
import json

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from academics.attendance import compute_attendance_stats
from core.choices import AttendanceWindow
from core.providers import SnapshotError, SnapshotRecordProvider
from core.utils import to_date


class Command(BaseCommand):
    help = 'Show present/absent/late/excused counts and presence rate for one student'

    def add_arguments(self, parser):
        parser.add_argument('snapshot', help='Path to the JSON snapshot export')
        parser.add_argument('--student', required=True, help='Student id')
        parser.add_argument(
            '--window',
            default=AttendanceWindow.WEEK.value,
            choices=AttendanceWindow.values,
            help='Trailing window (default: week)',
        )
        parser.add_argument(
            '--now',
            help='End of the window as YYYY-MM-DD (default: today)',
        )
        parser.add_argument(
            '--format',
            default='table',
            choices=['table', 'json'],
            help='Output format',
        )

    def handle(self, *args, **options):
        try:
            provider = SnapshotRecordProvider.from_json_file(options['snapshot'])
            now = to_date(options['now'], 'now') if options.get('now') else timezone.localdate()
        except (SnapshotError, ValidationError) as e:
            raise CommandError(str(e))

        student_id = options['student']
        student = provider.get_student(student_id)
        if student is None:
            raise CommandError(f'Student {student_id} not found in snapshot')

        records = [r for r in provider.list_attendance() if r.student_id == student_id]
        stats = compute_attendance_stats(records, options['window'], now)

        if options['format'] == 'json':
            data = stats.to_dict()
            data['student_id'] = student_id
            self.stdout.write(json.dumps(data, indent=2))
            return

        self.stdout.write(self.style.MIGRATE_HEADING(
            f'{student} - {stats.start_date:%d/%m/%Y} to {stats.end_date:%d/%m/%Y}'
        ))
        self.stdout.write(f'  Present: {stats.present}/{stats.total}')
        self.stdout.write(f'  Absent:  {stats.absent}')
        self.stdout.write(f'  Late:    {stats.late}')
        self.stdout.write(f'  Excused: {stats.excused}')
        self.stdout.write(self.style.SUCCESS(f'  Presence rate: {stats.presence_rate}%'))
