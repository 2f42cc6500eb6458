import json
import os
import tempfile
from datetime import date
from decimal import Decimal
from io import StringIO

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, override_settings

from core.choices import Appreciation, AssessmentType, Term
from core.records import Grade, Student, Subject
from .calculations import (
    classify_appreciation, compute_general_average, compute_subject_average, normalize_score,
)
from .exceptions import DataIntegrityError
from .ranking import ClassRanker, competition_ranks, rank_student
from .reports import (
    SubjectAverage, build_class_reports, build_student_report, compute_class_general_averages,
)


def make_grade(student_id, subject_id, value, max_value=20, term=Term.T1,
               class_id='6A', grade_type=AssessmentType.ASSESSMENT, grade_id=''):
    return Grade(
        id=grade_id,
        student_id=student_id,
        subject_id=subject_id,
        class_id=class_id,
        value=Decimal(str(value)),
        max_value=Decimal(str(max_value)),
        type=grade_type,
        date=date(2024, 10, 7),
        term=term,
        teacher_id='t1',
    )


MATHS = Subject(id='math', name='Mathématiques', code='MATH', coefficient=4)
FRENCH = Subject(id='fr', name='Français', code='FR', coefficient=3)
SPORT = Subject(id='eps', name='EPS', code='EPS', coefficient=1)
SUBJECTS = (MATHS, FRENCH, SPORT)


class NormalizeScoreTest(SimpleTestCase):
    """Tests for normalize_score."""

    def test_max_score_maps_to_twenty(self):
        self.assertEqual(normalize_score(10, 10), Decimal('20'))

    def test_rescales_other_scales(self):
        self.assertEqual(normalize_score(15, 20), Decimal('15'))
        self.assertEqual(normalize_score(45, 100), Decimal('9'))
        self.assertEqual(normalize_score(7, 10), Decimal('14'))

    def test_zero_value(self):
        self.assertEqual(normalize_score(0, 40), Decimal('0'))

    def test_zero_maximum_rejected(self):
        with self.assertRaises(ValidationError):
            normalize_score(5, 0)

    def test_negative_maximum_rejected(self):
        with self.assertRaises(ValidationError):
            normalize_score(5, -10)

    @override_settings(GRADEBOOK_SCORE_SCALE=100)
    def test_scale_follows_settings(self):
        self.assertEqual(normalize_score(10, 20), Decimal('50'))


class SubjectAverageCalculationTest(SimpleTestCase):
    """Tests for compute_subject_average."""

    def test_empty_list_is_zero(self):
        self.assertEqual(compute_subject_average([]), 0)

    def test_mixed_scales_are_normalized_first(self):
        grades = [
            make_grade('s1', 'math', 8, 10),    # 16
            make_grade('s1', 'math', 12, 20),   # 12
            make_grade('s1', 'math', 50, 100),  # 10
        ]
        self.assertEqual(compute_subject_average(grades), Decimal('38') / 3)

    def test_assessment_type_does_not_weight(self):
        devoir = make_grade('s1', 'math', 10, 20, grade_type=AssessmentType.ASSESSMENT)
        exam = make_grade('s1', 'math', 20, 20, grade_type=AssessmentType.EXAM)
        self.assertEqual(compute_subject_average([devoir, exam]), Decimal('15'))


class GeneralAverageTest(SimpleTestCase):
    """Tests for compute_general_average."""

    def test_weighted_mean(self):
        entries = [
            {'average': Decimal('16'), 'coefficient': 4},
            {'average': Decimal('10'), 'coefficient': 2},
        ]
        self.assertEqual(compute_general_average(entries), Decimal('14'))

    def test_accepts_pairs(self):
        self.assertEqual(compute_general_average([(12, 1), (18, 2)]), Decimal('16'))

    def test_ungraded_subject_still_counts(self):
        entries = [(Decimal('18'), 2), (Decimal('0'), 1)]
        self.assertEqual(compute_general_average(entries), Decimal('12'))

    def test_no_subjects_is_zero(self):
        self.assertEqual(compute_general_average([]), 0)

    def test_negative_coefficient_rejected(self):
        with self.assertRaises(ValidationError):
            compute_general_average([(Decimal('12'), -1)])

    def test_scale_invariance(self):
        """Same normalized marks on different scales give the same general average."""
        first = [make_grade('a', 'math', 15, 20), make_grade('a', 'fr', 7, 10)]
        second = [make_grade('b', 'math', 75, 100), make_grade('b', 'fr', 28, 40)]

        def general(grades):
            return compute_general_average([
                (compute_subject_average([g for g in grades if g.subject_id == s.id]), s.coefficient)
                for s in (MATHS, FRENCH)
            ])

        self.assertEqual(general(first), general(second))


class AppreciationTest(SimpleTestCase):
    """Tests for classify_appreciation."""

    def test_boundaries_are_inclusive(self):
        self.assertEqual(classify_appreciation(Decimal('16.0')), Appreciation.VERY_GOOD)
        self.assertEqual(classify_appreciation(Decimal('15.99')), Appreciation.GOOD)
        self.assertEqual(classify_appreciation(14), Appreciation.GOOD)
        self.assertEqual(classify_appreciation(12), Appreciation.FAIRLY_GOOD)
        self.assertEqual(classify_appreciation(10), Appreciation.PASSING)
        self.assertEqual(classify_appreciation(Decimal('9.99')), Appreciation.INSUFFICIENT)
        self.assertEqual(classify_appreciation(0), Appreciation.INSUFFICIENT)

    def test_labels(self):
        self.assertEqual(str(classify_appreciation(20).label), 'Très bien')
        self.assertEqual(str(classify_appreciation(11).label), 'Passable')


class RankingTest(SimpleTestCase):
    """Tests for competition ranking."""

    def setUp(self):
        self.averages = [90, 85, 85, 80]

    def test_tie_break(self):
        self.assertEqual(rank_student(90, self.averages).rank, 1)
        self.assertEqual(rank_student(85, self.averages).rank, 2)
        self.assertEqual(rank_student(80, self.averages).rank, 4)

    def test_input_order_does_not_matter(self):
        self.assertEqual(rank_student(80, [85, 80, 90, 85]).rank, 4)

    def test_total_students_is_roster_size(self):
        result = rank_student(0, [0, 0, 0, 12])
        self.assertEqual(result.total_students, 4)
        self.assertEqual(result.rank, 2)

    def test_empty_roster(self):
        result = rank_student(Decimal('12.5'), [])
        self.assertEqual(result.rank, 1)
        self.assertEqual(result.total_students, 0)

    def test_target_below_everyone(self):
        self.assertEqual(rank_student(10, [12, 14]).rank, 3)

    def test_ranker_reused_for_whole_class(self):
        ranker = ClassRanker(self.averages)
        self.assertEqual([ranker.rank(a) for a in self.averages], [1, 2, 2, 4])
        self.assertEqual(ranker.sorted_averages, (90, 85, 85, 80))

    def test_float_ties_with_exact_decimal(self):
        exact = Decimal(2) / Decimal(3) * 20
        ranker = ClassRanker([float(exact), Decimal('5')])
        self.assertEqual(ranker.rank(exact), 1)
        self.assertIn(exact, ranker)
        self.assertNotIn(Decimal('13.33'), ranker)

    def test_competition_ranks(self):
        ranks = competition_ranks({'a': 80, 'b': 85, 'c': 90, 'd': 85})
        self.assertEqual(ranks, {'a': 4, 'b': 2, 'c': 1, 'd': 2})


class StudentReportTest(SimpleTestCase):
    """Tests for report assembly."""

    def setUp(self):
        self.alice = Student(id='s1', class_id='6A', first_name='Alice', last_name='Martin')
        self.bruno = Student(id='s2', class_id='6A', first_name='Bruno', last_name='Diallo')
        self.chloe = Student(id='s3', class_id='6A', first_name='Chloé', last_name='Sow')
        self.roster = (self.alice, self.bruno, self.chloe)
        self.grades = [
            make_grade('s1', 'math', 16, 20),
            make_grade('s1', 'math', 9, 10),
            make_grade('s1', 'fr', 14, 20),
            make_grade('s1', 'eps', 15, 20),
            make_grade('s2', 'math', 10, 20),
            make_grade('s2', 'fr', 12, 20),
            make_grade('s3', 'math', 10, 20),
            make_grade('s3', 'fr', 12, 20),
            # Other term, must be ignored
            make_grade('s2', 'math', 20, 20, term=Term.T2),
        ]

    def _class_averages(self):
        return compute_class_general_averages(self.roster, SUBJECTS, self.grades, Term.T1)

    def test_subject_averages_follow_registered_subjects(self):
        report = build_student_report(
            self.alice, SUBJECTS, self.grades, self._class_averages(), Term.T1
        )
        self.assertEqual([sa.subject.id for sa in report.subject_averages], ['math', 'fr', 'eps'])
        self.assertEqual(report.subject_averages[0].average, Decimal('17'))
        self.assertEqual(len(report.subject_averages[0].source_grades), 2)

    def test_general_average(self):
        report = build_student_report(
            self.alice, SUBJECTS, self.grades, self._class_averages(), 'trimestre1'
        )
        # (17*4 + 14*3 + 15*1) / 8
        self.assertEqual(report.general_average, Decimal('125') / 8)
        self.assertEqual(report.appreciation, Appreciation.GOOD)
        self.assertEqual(report.total_coefficients, 8)
        self.assertEqual(report.term, Term.T1)

    def test_subject_without_grades_counts_as_zero(self):
        report = build_student_report(
            self.bruno, SUBJECTS, self.grades, self._class_averages(), Term.T1
        )
        sport = report.subject_averages[2]
        self.assertEqual(sport.average, 0)
        self.assertEqual(sport.source_grades, ())
        self.assertFalse(sport.has_grades)
        # (10*4 + 12*3 + 0*1) / 8
        self.assertEqual(report.general_average, Decimal('9.5'))

    def test_rank_with_tie(self):
        averages = self._class_averages()
        bruno = build_student_report(self.bruno, SUBJECTS, self.grades, averages, Term.T1)
        chloe = build_student_report(self.chloe, SUBJECTS, self.grades, averages, Term.T1)
        alice = build_student_report(self.alice, SUBJECTS, self.grades, averages, Term.T1)
        self.assertEqual((alice.rank, bruno.rank, chloe.rank), (1, 2, 2))
        self.assertEqual(alice.total_students, 3)

    def test_accepts_plain_sequence_of_averages(self):
        averages = list(self._class_averages().values())
        report = build_student_report(self.alice, SUBJECTS, self.grades, averages, Term.T1)
        self.assertEqual(report.rank, 1)
        self.assertEqual(report.warnings, ())

    def test_accepts_float_averages_from_caller(self):
        """Averages of 2/3 and 1/3 marks passed back as floats keep their ranks."""
        first = Student(id='a', class_id='6A')
        second = Student(id='b', class_id='6A')
        maths = Subject(id='math', name='Mathématiques', code='MATH', coefficient=1)
        grades = [make_grade('a', 'math', 2, 3), make_grade('b', 'math', 1, 3)]
        averages = [
            float(a) for a in
            compute_class_general_averages((first, second), [maths], grades, Term.T1).values()
        ]

        top = build_student_report(first, [maths], grades, averages, Term.T1)
        bottom = build_student_report(second, [maths], grades, averages, Term.T1)

        self.assertEqual((top.rank, top.total_students), (1, 2))
        self.assertEqual(top.warnings, ())
        self.assertEqual((bottom.rank, bottom.total_students), (2, 2))
        self.assertEqual(bottom.warnings, ())

    @override_settings(GRADEBOOK_STRICT_INTEGRITY=True)
    def test_float_averages_pass_strict_mode(self):
        student = Student(id='a', class_id='6A')
        maths = Subject(id='math', name='Mathématiques', code='MATH', coefficient=1)
        grades = [make_grade('a', 'math', 2, 3)]
        report = build_student_report(student, [maths], grades, [2 / 3 * 20, 1 / 3 * 20], Term.T1)
        self.assertEqual(report.rank, 1)

    def test_rebuilding_is_deterministic(self):
        averages = self._class_averages()
        first = build_student_report(self.alice, SUBJECTS, self.grades, averages, Term.T1)
        second = build_student_report(self.alice, SUBJECTS, self.grades, averages, Term.T1)
        self.assertEqual(first, second)
        self.assertEqual(json.dumps(first.to_dict()), json.dumps(second.to_dict()))

    def test_to_dict_rounds_for_display(self):
        report = build_student_report(
            self.alice, SUBJECTS, self.grades, self._class_averages(), Term.T1
        )
        data = report.to_dict()
        self.assertEqual(data['general_average'], '15.63')
        self.assertEqual(data['position'], '1/3')
        self.assertEqual(data['appreciation'], 'Bien')
        self.assertEqual(data['subjects'][0]['grades'], ['16/20', '9/10'])
        self.assertEqual(data['subjects'][0]['average'], '17.00')

    def test_to_dict_hides_ungraded_subject(self):
        report = build_student_report(
            self.bruno, SUBJECTS, self.grades, self._class_averages(), Term.T1
        )
        sport = report.to_dict()['subjects'][2]
        self.assertIsNone(sport['average'])
        self.assertIsNone(sport['appreciation'])
        self.assertEqual(sport['grades'], [])

    def test_to_dict_shows_graded_zero_average(self):
        grades = self.grades + [make_grade('s2', 'eps', 0, 20)]
        averages = compute_class_general_averages(self.roster, SUBJECTS, grades, Term.T1)
        report = build_student_report(self.bruno, SUBJECTS, grades, averages, Term.T1)
        sport = report.to_dict()['subjects'][2]
        self.assertEqual(sport['average'], '0.00')
        self.assertEqual(sport['appreciation'], 'Insuffisant')
        self.assertEqual(sport['grades'], ['0/20'])

    def test_subject_average_appreciation(self):
        line = SubjectAverage(subject=MATHS, average=Decimal('16'), source_grades=(), coefficient=4)
        self.assertEqual(line.appreciation, Appreciation.VERY_GOOD)
        self.assertEqual(line.weighted_points, Decimal('64'))

    def test_no_registered_subjects(self):
        report = build_student_report(self.alice, [], self.grades, {'s1': 0}, Term.T1)
        self.assertEqual(report.general_average, 0)
        self.assertEqual(report.rank, 1)


class IntegrityWarningTest(SimpleTestCase):
    """Tests for cross-record consistency checks."""

    def setUp(self):
        self.student = Student(id='s1', class_id='6A')
        self.grades = [
            make_grade('s1', 'math', 12, 20, grade_id='g1'),
            make_grade('s1', 'latin', 18, 20, grade_id='g2'),
        ]

    def test_unregistered_subject_is_reported(self):
        with self.assertLogs('gradebook.reports', level='WARNING'):
            report = build_student_report(self.student, SUBJECTS, self.grades, {'s1': 0}, Term.T1)
        self.assertEqual(len(report.warnings), 1)
        self.assertIn('latin', report.warnings[0])
        # Latin never reaches the general average
        self.assertEqual(report.general_average, Decimal('12') * 4 / 8)

    def test_grade_from_other_class_is_reported(self):
        grades = [make_grade('s1', 'math', 12, 20, class_id='5B', grade_id='g3')]
        with self.assertLogs('gradebook.reports', level='WARNING'):
            report = build_student_report(self.student, SUBJECTS, grades, {'s1': 0}, Term.T1)
        self.assertIn('5B', report.warnings[0])

    def test_empty_roster_is_reported(self):
        with self.assertLogs('gradebook.reports', level='WARNING'):
            report = build_student_report(self.student, SUBJECTS, [], [], Term.T1)
        self.assertEqual((report.rank, report.total_students), (1, 0))
        self.assertEqual(len(report.warnings), 1)

    def test_student_missing_from_roster_is_reported(self):
        with self.assertLogs('gradebook.reports', level='WARNING'):
            report = build_student_report(
                self.student, SUBJECTS, [], {'s2': Decimal('10')}, Term.T1
            )
        self.assertIn('not part of the roster', report.warnings[0])

    @override_settings(GRADEBOOK_STRICT_INTEGRITY=True)
    def test_strict_mode_raises(self):
        with self.assertRaises(DataIntegrityError) as ctx:
            build_student_report(self.student, SUBJECTS, self.grades, {'s1': 0}, Term.T1)
        self.assertEqual(ctx.exception.student_id, 's1')

    def test_unknown_term_rejected(self):
        with self.assertRaises(ValidationError):
            build_student_report(self.student, SUBJECTS, [], {'s1': 0}, 'trimestre4')


class ClassReportsTest(SimpleTestCase):
    """Tests for build_class_reports."""

    def setUp(self):
        self.roster = [
            Student(id='s1', class_id='6A', first_name='Alice', last_name='Martin'),
            Student(id='s2', class_id='6A', first_name='Bruno', last_name='Diallo'),
            Student(id='s3', class_id='6A', first_name='Chloé', last_name='Sow'),
            Student(id='s4', class_id='6A', first_name='David', last_name='Ba'),
        ]
        self.grades = [
            make_grade('s1', 'math', 18, 20),
            make_grade('s2', 'math', 17, 20),
            make_grade('s3', 'math', 17, 20),
            # s4 has no grades at all
        ]

    def test_reports_ordered_by_rank(self):
        reports = build_class_reports(self.roster, [MATHS], self.grades, Term.T1)
        self.assertEqual([r.student.id for r in reports], ['s1', 's2', 's3', 's4'])
        self.assertEqual([r.rank for r in reports], [1, 2, 2, 4])

    def test_total_students_includes_ungraded(self):
        reports = build_class_reports(self.roster, [MATHS], self.grades, Term.T1)
        self.assertTrue(all(r.total_students == 4 for r in reports))

    def test_single_student_keeps_class_rank(self):
        reports = build_class_reports(self.roster, [MATHS], self.grades, Term.T1, student_id='s3')
        self.assertEqual(len(reports), 1)
        self.assertEqual(reports[0].rank, 2)

    def test_matches_individual_reports(self):
        averages = compute_class_general_averages(self.roster, [MATHS], self.grades, Term.T1)
        batch = build_class_reports(self.roster, [MATHS], self.grades, Term.T1)
        for report in batch:
            single = build_student_report(report.student, [MATHS], self.grades, averages, Term.T1)
            self.assertEqual(single, report)


SNAPSHOT = {
    'students': [
        {'id': 's1', 'classId': '6A', 'firstName': 'Alice', 'lastName': 'Martin'},
        {'id': 's2', 'classId': '6A', 'firstName': 'Bruno', 'lastName': 'Diallo'},
        {'id': 's9', 'classId': '5B', 'firstName': 'Eva', 'lastName': 'Ndiaye'},
    ],
    'subjects': [
        {'id': 'math', 'name': 'Mathématiques', 'code': 'MATH', 'coefficient': 4},
        {'id': 'fr', 'name': 'Français', 'code': 'FR', 'coefficient': 2},
    ],
    'grades': [
        {'id': 'g1', 'studentId': 's1', 'subjectId': 'math', 'classId': '6A', 'value': 16,
         'maxValue': 20, 'type': 'devoir', 'date': '2024-10-07', 'term': 'trimestre1',
         'teacherId': 't1'},
        {'id': 'g2', 'studentId': 's1', 'subjectId': 'fr', 'classId': '6A', 'value': 7,
         'maxValue': 10, 'type': 'examen', 'date': '2024-10-14', 'term': 'trimestre1',
         'teacherId': 't2'},
        {'id': 'g3', 'studentId': 's2', 'subjectId': 'math', 'classId': '6A', 'value': 11,
         'maxValue': 20, 'type': 'composition', 'date': '2024-10-21', 'term': 'trimestre1',
         'teacherId': 't1'},
    ],
    'attendance': [],
}


class BuildReportCardsCommandTest(SimpleTestCase):
    """Tests for the build_report_cards management command."""

    def setUp(self):
        fd, self.path = tempfile.mkstemp(suffix='.json')
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(SNAPSHOT, f)

    def tearDown(self):
        os.remove(self.path)

    def test_json_output(self):
        out = StringIO()
        call_command('build_report_cards', self.path, '--class-id', '6A',
                     '--term', 'trimestre1', '--format', 'json', stdout=out)
        data = json.loads(out.getvalue())
        self.assertEqual([r['student_id'] for r in data], ['s1', 's2'])
        # (16*4 + 14*2) / 6
        self.assertEqual(data[0]['general_average'], '15.33')
        self.assertEqual(data[0]['position'], '1/2')
        self.assertEqual(data[1]['general_average'], '7.33')
        self.assertEqual(data[1]['appreciation'], 'Insuffisant')

    def test_table_output(self):
        out = StringIO()
        call_command('build_report_cards', self.path, '--class-id', '6A', stdout=out)
        output = out.getvalue()
        self.assertIn('Alice Martin', output)
        self.assertIn('Rang: 1/2', output)
        self.assertIn('Built 2 report card(s)', output)

    def test_single_student(self):
        out = StringIO()
        call_command('build_report_cards', self.path, '--class-id', '6A',
                     '--student', 's2', '--format', 'json', stdout=out)
        data = json.loads(out.getvalue())
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]['rank'], 2)

    def test_unknown_class(self):
        with self.assertRaises(CommandError):
            call_command('build_report_cards', self.path, '--class-id', '3C', stdout=StringIO())

    def test_student_outside_class(self):
        with self.assertRaises(CommandError):
            call_command('build_report_cards', self.path, '--class-id', '6A',
                         '--student', 's9', stdout=StringIO())

    def test_invalid_snapshot(self):
        bad = dict(SNAPSHOT)
        bad['grades'] = [dict(SNAPSHOT['grades'][0], maxValue=0)]
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(bad, f)
        with self.assertRaises(CommandError):
            call_command('build_report_cards', self.path, '--class-id', '6A', stdout=StringIO())

    def test_missing_snapshot(self):
        with self.assertRaises(CommandError):
            call_command('build_report_cards', self.path + '.missing', '--class-id', '6A',
                         stdout=StringIO())
