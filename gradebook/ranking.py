"""
Class ranking by general average.

Uses standard competition ranking: tied students share the best rank and the
next distinct average skips ahead by the size of the tie (90, 85, 85, 80 ranks
as 1, 2, 2, 4). Ranks are computed by value, so input order never matters.

Averages are compared after half-up rounding to GRADEBOOK_RANKING_DECIMALS
places, so a float copy of an average ties with the exact Decimal it came from.
"""
from bisect import bisect_left
from typing import NamedTuple

from core.utils import quantize, to_decimal
from . import config


class RankResult(NamedTuple):
    rank: int
    total_students: int


def ranking_key(average):
    """The value an average is compared by when ranking."""
    return quantize(to_decimal(average, 'average'), config.RANKING_DECIMALS)


class ClassRanker:
    """
    Sorts a class's general averages once and answers rank lookups.

    Sorting is O(n log n); each lookup is a binary search, so ranking a whole
    class costs one sort instead of one sort per student.
    """

    def __init__(self, averages):
        self._descending = sorted((ranking_key(a) for a in averages), reverse=True)
        # Negated ascending copy for bisect
        self._keys = [-a for a in self._descending]

    @property
    def total_students(self):
        return len(self._descending)

    @property
    def sorted_averages(self):
        return tuple(self._descending)

    def __contains__(self, average):
        return ranking_key(average) in self._descending

    def rank(self, target):
        """
        1 + index of the first sorted average <= target.

        Equals 1 + the number of strictly greater averages, so a target below
        every average ranks last + 1 and an empty class ranks 1.
        """
        return bisect_left(self._keys, -ranking_key(target)) + 1


def rank_student(target, classmate_averages):
    """Rank one general average among the class's general averages."""
    ranker = ClassRanker(classmate_averages)
    return RankResult(rank=ranker.rank(target), total_students=ranker.total_students)


def competition_ranks(averages_by_student):
    """
    Rank every student of a class at once.

    Args:
        averages_by_student: dict of student_id -> general average

    Returns:
        dict of student_id -> rank
    """
    ranker = ClassRanker(averages_by_student.values())
    return {
        student_id: ranker.rank(average)
        for student_id, average in averages_by_student.items()
    }
