"""
Subject totals, grades, and the term report figures derived from them.
"""
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.db import transaction
from django.db.models import Avg, Count, Sum

from .grading import to_decimal

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')

DERIVED_FIELDS = ['total_score', 'grade_label', 'gpa_value', 'grade_remark']


def round2(value):
    """Round half away from zero to two decimal places."""
    if value is None:
        return None
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def aggregate(component_scores):
    """
    Sum a subject's component scores.

    Components that are missing, None or blank contribute 0; teachers fill
    them in over the course of a term. A score that is not a finite number
    raises ValueError, as does a total too large to round.
    """
    total = Decimal('0')
    for name, value in (component_scores or {}).items():
        if value is None or value == '':
            continue
        try:
            score = to_decimal(value)
        except (InvalidOperation, ValueError, TypeError):
            raise ValueError(f"Component '{name}' has a non-numeric score: {value!r}")
        if not score.is_finite():
            raise ValueError(f"Component '{name}' has a non-finite score: {value!r}")
        total += score
    try:
        return round2(total)
    except InvalidOperation:
        raise ValueError(f"Total score {total} is out of range")


def grade_entry(entry, scheme_rules):
    """
    Derive total and grade for a ScoreEntry in memory.

    Returns True when any derived field changed. NoMatchingRuleError
    propagates and leaves the entry untouched.
    """
    total = aggregate(entry.component_scores)
    grade = scheme_rules.resolve(total, subject_id=entry.subject_id)

    new_values = {
        'total_score': total,
        'grade_label': grade.label,
        'gpa_value': round2(grade.gpa),
        'grade_remark': grade.remark,
    }
    changed = False
    for field, value in new_values.items():
        current = getattr(entry, field)
        if field in ('total_score', 'gpa_value'):
            current = round2(current)
        if current != value:
            setattr(entry, field, value)
            changed = True
    return changed


def record_scores(entry, component_scores, scheme_rules):
    """Manual save path: store a teacher's component scores and derive the grade."""
    entry.component_scores = dict(component_scores)
    grade_entry(entry, scheme_rules)
    entry.save()
    logger.debug(
        f"Recorded {entry.subject_id} for student {entry.student_id}: "
        f"{entry.total_score} ({entry.grade_label})"
    )
    return entry


def sync_term_report(student_id, term_id):
    """
    Recompute a StudentTermReport's totals from the student's ScoreEntries.

    Returns the report, or None when there is nothing to report on.
    """
    from .models import ScoreEntry, StudentTermReport

    entries = ScoreEntry.objects.filter(student_id=student_id, term_id=term_id)
    stats = entries.aggregate(
        total=Sum('total_score'),
        average=Avg('total_score'),
        count=Count('total_score'),
    )
    latest_class_id = entries.order_by('-updated_at').values_list('academic_class_id', flat=True).first()

    with transaction.atomic():
        report = StudentTermReport.objects.select_for_update().filter(
            student_id=student_id, term_id=term_id
        ).first()
        if report is None:
            if latest_class_id is None:
                return None
            report = StudentTermReport(student_id=student_id, term_id=term_id)

        report.total_score = round2(stats['total'] or 0)
        report.average_score = round2(stats['average']) if stats['count'] else None
        report.subjects_count = stats['count']
        if latest_class_id is not None:
            report.academic_class_id = latest_class_id
        report.save()

    logger.debug(
        f"Synced term report for student {student_id}, term {term_id}: "
        f"avg={report.average_score}, subjects={report.subjects_count}"
    )
    return report
