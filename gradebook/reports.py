"""
Report card assembly.

A report is derived on demand from a snapshot: one SubjectAverage per
registered subject, the coefficient-weighted general average, the rank within
the student's class for the same term, and appreciation labels. Reports are
never stored; rebuilding from the same snapshot gives identical values.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple

from core.choices import Appreciation, Term
from core.records import Grade, Student, Subject
from core.utils import parse_choice, quantize
from . import config
from .calculations import classify_appreciation, compute_general_average, compute_subject_average
from .exceptions import DataIntegrityError
from .ranking import ClassRanker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubjectAverage:
    subject: Subject
    average: Decimal
    source_grades: Tuple[Grade, ...]
    coefficient: int

    @property
    def has_grades(self):
        return bool(self.source_grades)

    @property
    def appreciation(self) -> Appreciation:
        return classify_appreciation(self.average)

    @property
    def weighted_points(self):
        return self.average * self.coefficient

    def to_dict(self, places=None):
        places = config.DISPLAY_DECIMALS if places is None else places
        return {
            'subject_id': self.subject.id,
            'subject': self.subject.name,
            'code': self.subject.code,
            'coefficient': self.coefficient,
            'grades': [f'{g.value}/{g.max_value}' for g in self.source_grades],
            'average': str(quantize(self.average, places)) if self.has_grades else None,
            'appreciation': str(self.appreciation.label) if self.has_grades else None,
        }


@dataclass(frozen=True)
class StudentReport:
    student: Student
    subject_averages: Tuple[SubjectAverage, ...]
    general_average: Decimal
    rank: int
    total_students: int
    term: Term
    warnings: Tuple[str, ...] = field(default=())

    @property
    def appreciation(self) -> Appreciation:
        return classify_appreciation(self.general_average)

    @property
    def total_coefficients(self):
        return sum(sa.coefficient for sa in self.subject_averages)

    def to_dict(self, places=None):
        """Report card values rounded for display."""
        places = config.DISPLAY_DECIMALS if places is None else places
        return {
            'student_id': self.student.id,
            'student': self.student.full_name,
            'class_id': self.student.class_id,
            'term': self.term.value,
            'term_label': str(self.term.label),
            'subjects': [sa.to_dict(places) for sa in self.subject_averages],
            'total_coefficients': self.total_coefficients,
            'general_average': str(quantize(self.general_average, places)),
            'appreciation': str(self.appreciation.label),
            'rank': self.rank,
            'total_students': self.total_students,
            'position': f'{self.rank}/{self.total_students}',
            'warnings': list(self.warnings),
        }


def _report_problem(message, student_id, warnings):
    """Raise in strict mode, otherwise log and keep the warning for the caller."""
    if config.STRICT_INTEGRITY:
        raise DataIntegrityError(message, student_id=student_id)
    logger.warning(message)
    warnings.append(message)


def _grades_by_student(grades, term):
    grouped = defaultdict(list)
    for grade in grades:
        if grade.term == term:
            grouped[grade.student_id].append(grade)
    return grouped


def _subject_averages(subjects, student_grades):
    by_subject = defaultdict(list)
    for grade in student_grades:
        by_subject[grade.subject_id].append(grade)

    return tuple(
        SubjectAverage(
            subject=subject,
            average=compute_subject_average(by_subject.get(subject.id, [])),
            source_grades=tuple(by_subject.get(subject.id, [])),
            coefficient=subject.coefficient,
        )
        for subject in subjects
    )


def _check_grades(student, subjects, student_grades, warnings):
    registered = {s.id for s in subjects}
    for grade in student_grades:
        if grade.subject_id not in registered:
            _report_problem(
                f'Grade {grade.id or "?"} for student {student.id} references '
                f'unregistered subject {grade.subject_id}; it is ignored',
                student.id, warnings,
            )
        elif grade.class_id and grade.class_id != student.class_id:
            _report_problem(
                f'Grade {grade.id or "?"} for student {student.id} was recorded in class '
                f'{grade.class_id}, but the student is in class {student.class_id}',
                student.id, warnings,
            )


def _assemble_report(student, subjects, student_grades, term, ranker, in_roster):
    warnings = []
    _check_grades(student, subjects, student_grades, warnings)

    if ranker.total_students == 0:
        _report_problem(
            f'No classmates found for class {student.class_id}; '
            f'student {student.id} is ranked 1 of 0',
            student.id, warnings,
        )
    elif not in_roster:
        _report_problem(
            f'Student {student.id} is not part of the roster used to rank class {student.class_id}',
            student.id, warnings,
        )

    subject_averages = _subject_averages(subjects, student_grades)
    general_average = compute_general_average(subject_averages)

    report = StudentReport(
        student=student,
        subject_averages=subject_averages,
        general_average=general_average,
        rank=ranker.rank(general_average),
        total_students=ranker.total_students,
        term=term,
        warnings=tuple(warnings),
    )
    logger.debug(
        f'Report for {student.id} ({term}): average {general_average}, '
        f'rank {report.rank}/{report.total_students}'
    )
    return report


def compute_class_general_averages(roster, all_subjects, grades, term):
    """
    General average of every student in a roster for one term.

    Returns:
        dict of student_id -> general average (Decimal), in roster order
    """
    term = parse_choice(Term, term, 'term')
    subjects = tuple(all_subjects)
    grades_by_student = _grades_by_student(grades, term)

    return {
        student.id: compute_general_average(
            _subject_averages(subjects, grades_by_student.get(student.id, []))
        )
        for student in roster
    }


def build_student_report(student, all_subjects, grades, classmate_general_averages, term):
    """
    Build one student's report card for a term.

    Args:
        student: the Student being reported on
        all_subjects: every registered Subject for the term
        grades: the student's grades; grades of other students or terms are skipped
        classmate_general_averages: general averages of the whole class roster
            (the student included), either a dict keyed by student id or a
            plain sequence of averages
        term: Term or its stored value

    Returns:
        StudentReport
    """
    term = parse_choice(Term, term, 'term')
    subjects = tuple(all_subjects)
    student_grades = [g for g in grades if g.student_id == student.id and g.term == term]

    if isinstance(classmate_general_averages, dict):
        ranker = ClassRanker(classmate_general_averages.values())
        in_roster = student.id in classmate_general_averages
    else:
        ranker = ClassRanker(classmate_general_averages)
        # Without ids, the student's own average must appear among the values
        own_average = compute_general_average(_subject_averages(subjects, student_grades))
        in_roster = own_average in ranker

    return _assemble_report(student, subjects, student_grades, term, ranker, in_roster)


def build_class_reports(roster, all_subjects, grades, term, student_id: Optional[str] = None):
    """
    Build report cards for a whole class with a single ranking sort.

    Args:
        roster: every Student of the class
        all_subjects: every registered Subject for the term
        grades: grade snapshot (may include other classes and terms)
        term: Term or its stored value
        student_id: only return this student's report (still ranked against the roster)

    Returns:
        list of StudentReport ordered by rank, then last and first name
    """
    term = parse_choice(Term, term, 'term')
    roster = tuple(roster)
    subjects = tuple(all_subjects)
    grades_by_student = _grades_by_student(grades, term)

    averages = compute_class_general_averages(roster, subjects, grades, term)
    ranker = ClassRanker(averages.values())

    reports = [
        _assemble_report(
            student, subjects, grades_by_student.get(student.id, []), term, ranker, True
        )
        for student in roster
        if student_id is None or student.id == student_id
    ]
    reports.sort(key=lambda r: (r.rank, r.student.last_name, r.student.first_name))

    logger.info(
        f'Built {len(reports)} report(s) for {len(roster)} students, term {term}'
    )
    return reports
