from django.db import models
from django.utils.translation import gettext_lazy as _

class Term(models.TextChoices):
    T1 = 'trimestre1', _('Trimestre 1')
    T2 = 'trimestre2', _('Trimestre 2')
    T3 = 'trimestre3', _('Trimestre 3')

class AssessmentType(models.TextChoices):
    ASSESSMENT = 'devoir', _('Devoir')
    COMPOSITE = 'composition', _('Composition')
    EXAM = 'examen', _('Examen')

class AttendanceStatus(models.TextChoices):
    PRESENT = 'present', _('Présent')
    ABSENT = 'absent', _('Absent')
    LATE = 'late', _('En retard')
    EXCUSED = 'excused', _('Excusé')

class AttendanceWindow(models.TextChoices):
    WEEK = 'week', _('Cette semaine')
    MONTH = 'month', _('Ce mois')

class Appreciation(models.TextChoices):
    VERY_GOOD = 'TRES_BIEN', _('Très bien')
    GOOD = 'BIEN', _('Bien')
    FAIRLY_GOOD = 'ASSEZ_BIEN', _('Assez bien')
    PASSING = 'PASSABLE', _('Passable')
    INSUFFICIENT = 'INSUFFISANT', _('Insuffisant')
