"""
JSON endpoints for report cards and grade recalculation.
"""
import json
import logging
from functools import wraps

from django.contrib.auth.decorators import login_required
from django.db import transaction
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from core.models import Term
from students.models import Student

from .models import GradingScheme, RecalculationRun
from .recalculation import recalculate_all
from .reports import build_report

logger = logging.getLogger(__name__)


def is_school_admin(user):
    """Check if user is staff or superuser."""
    return user.is_superuser or user.is_staff


def admin_required(view_func):
    """Decorator to require staff or superuser, answering 403 JSON otherwise."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not is_school_admin(request.user):
            logger.warning(f"Permission denied for {request.user} on {view_func.__name__}")
            return JsonResponse({'error': 'Permission denied'}, status=403)
        return view_func(request, *args, **kwargs)
    return wrapper


def _request_data(request):
    """Form fields or a JSON body."""
    if request.content_type == 'application/json':
        try:
            data = json.loads(request.body or b'{}')
        except (ValueError, UnicodeDecodeError):
            return None
        return data if isinstance(data, dict) else None
    return request.POST


@login_required
@require_GET
def get_student_term_report_details(request, student_id, term_id):
    """Full report card payload for one student and term."""
    try:
        payload = build_report(student_id, term_id)
    except Student.DoesNotExist:
        return JsonResponse({'error': 'Student not found'}, status=404)
    except Term.DoesNotExist:
        return JsonResponse({'error': 'Term not found'}, status=404)
    return JsonResponse(payload)


@login_required
@admin_required
@require_POST
def recalculate_all_grades(request, scheme_id):
    """
    Re-grade every entry that uses a grading scheme.

    Optional ``term_id`` limits the batch to one term. With ``async=1`` the
    batch is queued and the response is 202 with the run id.
    """
    data = _request_data(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON body'}, status=400)

    try:
        scheme = GradingScheme.objects.select_related('school').get(pk=scheme_id)
    except GradingScheme.DoesNotExist:
        return JsonResponse({'error': 'Grading scheme not found'}, status=404)

    term_id = data.get('term_id') or None
    if term_id is not None:
        try:
            term_id = int(term_id)
        except (TypeError, ValueError):
            return JsonResponse({'error': 'term_id must be an integer'}, status=400)
        if not Term.objects.filter(pk=term_id, academic_year__school_id=scheme.school_id).exists():
            return JsonResponse({'error': 'Term not found'}, status=404)

    run = RecalculationRun.objects.create(
        school=scheme.school, grading_scheme=scheme, term_id=term_id
    )

    if str(data.get('async', '')).lower() in ('1', 'true', 'yes'):
        from .tasks import recalculate_grades_task

        transaction.on_commit(lambda: recalculate_grades_task.delay(str(run.pk)))
        logger.info(f"Queued recalculation run {run.pk} for scheme '{scheme}' by {request.user}")
        return JsonResponse({'run_id': str(run.pk), 'status': run.status}, status=202)

    result = recalculate_all(scheme.pk, term_id=term_id, run=run)
    return JsonResponse({
        'updated_count': result.updated_count,
        'failures': result.failures,
        'run_id': str(run.pk),
        'status': run.status,
    })


@login_required
@require_GET
def recalculation_run_status(request, run_id):
    try:
        run = RecalculationRun.objects.get(pk=run_id)
    except RecalculationRun.DoesNotExist:
        return JsonResponse({'error': 'Run not found'}, status=404)
    return JsonResponse(run.as_payload())
