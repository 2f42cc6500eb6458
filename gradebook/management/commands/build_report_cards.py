"""
Management command to build term report cards for a class from a JSON snapshot.

The snapshot is the school application's export (students, subjects, grades,
attendance). Nothing is written back; reports are printed.

Usage:
    python manage.py build_report_cards export.json --class-id 6A --term trimestre1
    python manage.py build_report_cards export.json --class-id 6A --term trimestre2 --student s42 --format json
"""
import json

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from core.choices import Term
from core.providers import SnapshotError, SnapshotRecordProvider
from gradebook.exceptions import DataIntegrityError
from gradebook.reports import build_class_reports


class Command(BaseCommand):
    help = 'Build term report cards (subject averages, general average, rank) for a class'

    def add_arguments(self, parser):
        parser.add_argument('snapshot', help='Path to the JSON snapshot export')
        parser.add_argument(
            '--class-id',
            required=True,
            help='Class whose students are reported and ranked',
        )
        parser.add_argument(
            '--term',
            default=Term.T1.value,
            choices=Term.values,
            help='Grading period (default: trimestre1)',
        )
        parser.add_argument(
            '--student',
            help='Only print this student\'s report (still ranked against the class)',
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
        except (SnapshotError, ValidationError) as e:
            raise CommandError(f'Invalid snapshot: {e}')

        class_id = options['class_id']
        roster = provider.list_students(class_id)
        if not roster:
            raise CommandError(f'No students found in class {class_id}')

        try:
            reports = build_class_reports(
                roster,
                provider.list_subjects(),
                provider.list_grades(),
                options['term'],
                student_id=options.get('student'),
            )
        except (ValidationError, DataIntegrityError) as e:
            raise CommandError(f'Could not build reports: {e}')

        if not reports:
            raise CommandError(f'Student {options["student"]} is not in class {class_id}')

        if options['format'] == 'json':
            self.stdout.write(json.dumps([r.to_dict() for r in reports], indent=2, ensure_ascii=False))
            return

        for report in reports:
            self._write_report(report.to_dict())

        self.stdout.write(self.style.SUCCESS(f'Built {len(reports)} report card(s) for class {class_id}'))

    def _write_report(self, data):
        self.stdout.write(self.style.MIGRATE_HEADING(
            f"{data['student']} - {data['term_label']} - "
            f"Moyenne: {data['general_average']}/20 - "
            f"Rang: {data['position']} - {data['appreciation']}"
        ))
        for line in data['subjects']:
            average = f"{line['average']}/20" if line['average'] is not None else '-'
            grades = ', '.join(line['grades']) or '-'
            self.stdout.write(
                f"  {line['subject']:<24} coef {line['coefficient']:<3} "
                f"{grades:<28} {average:<10} {line['appreciation'] or '-'}"
            )
        self.stdout.write(f"  Total coefficients: {data['total_coefficients']}")
        for warning in data['warnings']:
            self.stdout.write(self.style.WARNING(f'  ! {warning}'))
