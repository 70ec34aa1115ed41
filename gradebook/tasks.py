"""
Celery tasks for gradebook app.
Runs grade recalculation in the background.
"""
import logging

from celery import shared_task
from django.utils import timezone

from . import config


logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=0,
    soft_time_limit=config.TASK_SOFT_TIME_LIMIT,
    time_limit=config.TASK_TIME_LIMIT,
)
def recalculate_grades_task(self, run_id):
    """
    Execute a queued RecalculationRun.

    Failed entries are recorded on the run and not retried.
    """
    from .models import RecalculationRun
    from .recalculation import recalculate_all

    try:
        run = RecalculationRun.objects.get(pk=run_id)
    except RecalculationRun.DoesNotExist:
        # Non-retryable - run was deleted before the worker picked it up
        logger.error(f"RecalculationRun {run_id} not found")
        return {'success': False, 'error': 'Run not found'}

    if run.is_settled:
        logger.warning(f"RecalculationRun {run_id} already {run.status}; skipping")
        return {'success': False, 'error': f'Run already {run.status}'}

    try:
        result = recalculate_all(run.grading_scheme_id, term_id=run.term_id, run=run)
    except Exception as e:
        # recalculate_all marks the run failed before re-raising; this
        # covers failures before it got that far
        RecalculationRun.objects.filter(pk=run_id, status__in=RecalculationRun.UNSETTLED).update(
            status=RecalculationRun.Status.FAILED,
            error=str(e)[:1000],
            finished_at=timezone.now(),
        )
        logger.error(f"Recalculation task for run {run_id} failed: {e}")
        return {'success': False, 'run_id': str(run_id), 'error': str(e)}

    return {
        'success': True,
        'run_id': str(run_id),
        'updated_count': result.updated_count,
        'failures': len(result.failures),
    }
