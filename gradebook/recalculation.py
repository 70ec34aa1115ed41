"""
Bulk re-grading after a grading scheme changes.

Each entry is graded and saved in its own short transaction so a bad entry
never blocks the rest of the batch. Reports and positions are refreshed once
the entries have settled.
"""
import logging
from collections import namedtuple
from decimal import InvalidOperation

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.db.models import Q
from django.utils import timezone

from .aggregation import DERIVED_FIELDS, grade_entry, sync_term_report
from .exceptions import NoMatchingRuleError
from .grading import SchemeRules
from .ranking import assign_class_positions
from .signals import signals_disabled

logger = logging.getLogger(__name__)

RecalculationResult = namedtuple('RecalculationResult', ['updated_count', 'failures', 'run'])

ENTRY_ERRORS = (NoMatchingRuleError, ValidationError, ValueError, InvalidOperation, DatabaseError)


def entries_using_scheme(scheme, term_id=None):
    """
    ScoreEntries graded by ``scheme``: classes pinned to it, plus unpinned
    classes when it is the school's active scheme (or none is set).
    """
    from core.models import SchoolSettings
    from .models import ScoreEntry

    # Read fresh, the cached settings may predate an activation in another process
    active_id = SchoolSettings.objects.filter(
        school=scheme.school
    ).values_list('active_grading_scheme_id', flat=True).first()
    uses_scheme = Q(academic_class__grading_scheme=scheme)
    if active_id is None or active_id == scheme.pk:
        uses_scheme |= Q(academic_class__grading_scheme__isnull=True)

    entries = ScoreEntry.objects.filter(school=scheme.school).filter(uses_scheme)
    if term_id is not None:
        entries = entries.filter(term_id=term_id)
    return entries.order_by('term_id', 'academic_class_id', 'subject_id', 'student_id')


def recalculate_all(grading_scheme_id, term_id=None, run=None):
    """
    Re-derive total and grade for every entry using the scheme.

    Returns a RecalculationResult; ``failures`` lists ``{entry_id, reason}``
    for entries that could not be graded. Running it twice without data
    changes updates nothing the second time.
    """
    from .models import GradingScheme, RecalculationRun

    scheme = GradingScheme.objects.select_related('school').get(pk=grading_scheme_id)
    if run is None:
        run = RecalculationRun.objects.create(
            school=scheme.school, grading_scheme=scheme, term_id=term_id
        )

    run.status = RecalculationRun.Status.RUNNING
    run.started_at = timezone.now()
    run.save(update_fields=['status', 'started_at'])

    updated = 0
    failures = []
    changed_reports = set()
    try:
        # One snapshot so every entry in the batch sees the same rules
        scheme_rules = SchemeRules.load(scheme)
        entries = list(entries_using_scheme(scheme, term_id))
        logger.info(f"Recalculating {len(entries)} entries with scheme '{scheme}' (term: {term_id or 'all'})")

        with signals_disabled():
            for entry in entries:
                try:
                    with transaction.atomic():
                        changed = grade_entry(entry, scheme_rules)
                        if changed:
                            entry.save(update_fields=DERIVED_FIELDS + ['updated_at'])
                except ENTRY_ERRORS as e:
                    logger.error(f"Could not recalculate entry {entry.pk}: {e}")
                    failures.append({'entry_id': str(entry.pk), 'reason': str(e)})
                    continue
                if changed:
                    updated += 1
                    changed_reports.add((entry.student_id, entry.term_id))
                    logger.debug(f"Entry {entry.pk} -> {entry.total_score} ({entry.grade_label})")

        for student_id, entry_term_id in sorted(changed_reports):
            sync_term_report(student_id, entry_term_id)

        from core.models import Term
        for term in Term.objects.filter(pk__in={t for _, t in changed_reports}):
            assign_class_positions(term)

    except Exception as e:
        run.status = RecalculationRun.Status.FAILED
        run.error = str(e)[:1000]
        run.updated_count = updated
        run.failures = failures
        run.finished_at = timezone.now()
        run.save(update_fields=['status', 'error', 'updated_count', 'failures', 'finished_at'])
        logger.exception(f"Recalculation run {run.pk} failed")
        raise

    run.status = RecalculationRun.Status.COMPLETED
    run.updated_count = updated
    run.failures = failures
    run.finished_at = timezone.now()
    run.save(update_fields=['status', 'updated_count', 'failures', 'finished_at'])

    logger.info(
        f"Recalculation run {run.pk} completed: {updated} updated, {len(failures)} failed"
    )
    return RecalculationResult(updated, failures, run)


def recalculation_settled(school, term=None):
    """True when no recalculation covering the term is pending or running."""
    from .models import RecalculationRun

    runs = RecalculationRun.objects.filter(school=school, status__in=RecalculationRun.UNSETTLED)
    if term is not None:
        runs = runs.filter(Q(term=term) | Q(term__isnull=True))
    return not runs.exists()
