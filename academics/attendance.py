"""
Attendance statistics over trailing week and month windows.

Windows are computed on calendar dates and are inclusive at both ends, so a
record dated exactly seven days before today belongs to the week window.
"""
import calendar
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP

from core.choices import AttendanceStatus, AttendanceWindow
from core.utils import parse_choice, to_date
from gradebook import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttendanceStats:
    total: int
    present: int
    absent: int
    late: int
    excused: int
    window: AttendanceWindow = None
    start_date: date = None
    end_date: date = None

    @property
    def presence_rate(self):
        """Share of present records as a whole percentage, 0 when nothing was recorded."""
        if self.total == 0:
            return 0
        rate = Decimal(self.present) / Decimal(self.total) * 100
        return int(rate.quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    def to_dict(self):
        return {
            'window': self.window.value if self.window else None,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'total': self.total,
            'present': self.present,
            'absent': self.absent,
            'late': self.late,
            'excused': self.excused,
            'presence_rate': self.presence_rate,
        }


def subtract_month(day):
    """
    Same day of the previous calendar month.

    Days that do not exist in the previous month are clamped to its last day
    (31 March -> 29 February in a leap year).
    """
    if day.month == 1:
        year, month = day.year - 1, 12
    else:
        year, month = day.year, day.month - 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


def window_bounds(window, now):
    """
    Return (start_date, end_date) for a trailing window ending on ``now``.

    Raises:
        ValidationError: on an unknown window kind
    """
    window = parse_choice(AttendanceWindow, window, 'window')
    end_date = to_date(now, 'now')

    if window == AttendanceWindow.WEEK:
        start_date = end_date - timedelta(days=config.ATTENDANCE_WEEK_DAYS)
    else:
        start_date = subtract_month(end_date)

    return start_date, end_date


def _count(records):
    counts = Counter(r.status for r in records)
    present = counts[AttendanceStatus.PRESENT]
    absent = counts[AttendanceStatus.ABSENT]
    late = counts[AttendanceStatus.LATE]
    excused = counts[AttendanceStatus.EXCUSED]
    return present, absent, late, excused


def compute_attendance_stats(records, window, now):
    """
    Count one student's attendance records inside a trailing window.

    Args:
        records: the student's AttendanceRecords (callers filter by student)
        window: 'week' or 'month'
        now: date or datetime the window ends on

    Returns:
        AttendanceStats
    """
    window = parse_choice(AttendanceWindow, window, 'window')
    start_date, end_date = window_bounds(window, now)

    in_window = [r for r in records if start_date <= r.date <= end_date]
    present, absent, late, excused = _count(in_window)

    return AttendanceStats(
        total=present + absent + late + excused,
        present=present,
        absent=absent,
        late=late,
        excused=excused,
        window=window,
        start_date=start_date,
        end_date=end_date,
    )


def attendance_overview(records, student_ids, now):
    """
    Week and month statistics for several students, as shown to parents.

    Returns:
        dict of student_id -> {'week': AttendanceStats, 'month': AttendanceStats}
    """
    by_student = {student_id: [] for student_id in student_ids}
    for record in records:
        if record.student_id in by_student:
            by_student[record.student_id].append(record)

    return {
        student_id: {
            AttendanceWindow.WEEK.value: compute_attendance_stats(
                student_records, AttendanceWindow.WEEK, now
            ),
            AttendanceWindow.MONTH.value: compute_attendance_stats(
                student_records, AttendanceWindow.MONTH, now
            ),
        }
        for student_id, student_records in by_student.items()
    }


def daily_class_summary(records, class_id, day):
    """
    Status counts for one class on one day (the daily roll call).

    Students without a record that day are not counted; the caller compares
    ``total`` with the roster size to find missing entries.
    """
    day = to_date(day, 'day')
    todays = [r for r in records if r.class_id == class_id and r.date == day]
    present, absent, late, excused = _count(todays)

    if len({r.student_id for r in todays}) != len(todays):
        logger.warning(f'Duplicate attendance records for class {class_id} on {day}')

    return AttendanceStats(
        total=present + absent + late + excused,
        present=present,
        absent=absent,
        late=late,
        excused=excused,
        start_date=day,
        end_date=day,
    )
