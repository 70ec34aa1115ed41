"""
Report card payload assembly.

``build_report`` is read-only: it combines stored scores and reports with
ranking, attendance and school configuration into one JSON-ready dict.
"""
import logging
from decimal import Decimal

from django.db import transaction

from .aggregation import round2
from .attendance import resolve_attendance
from .ranking import compute_standings, load_cohort, standing_for, subject_positions
from .recalculation import recalculation_settled

logger = logging.getLogger(__name__)


def _num(value):
    """2 dp float for JSON, None stays None."""
    if value is None:
        return None
    return float(round2(value))


def gpa_average(entries):
    values = [e.gpa_value for e in entries if e.gpa_value is not None]
    if not values:
        return None
    return round2(sum(values, Decimal('0')) / len(values))


def _student_payload(student, academic_class):
    return {
        'id': student.pk,
        'fullName': student.full_name,
        'firstName': student.first_name,
        'lastName': student.last_name,
        'otherNames': student.other_names,
        'admissionNumber': student.admission_number,
        'gender': student.get_gender_display() if student.gender else None,
        'status': student.status,
        'campus': student.campus.name if student.campus_id else None,
        'className': academic_class.name if academic_class else None,
        'level': academic_class.level if academic_class else None,
        'arm': academic_class.arm if academic_class else None,
    }


def _term_payload(term):
    return {
        'id': term.pk,
        'name': term.name,
        'termNumber': term.term_number,
        'session': term.session_label,
        'startDate': term.start_date.isoformat() if term.start_date else None,
        'endDate': term.end_date.isoformat() if term.end_date else None,
    }


def build_report(student_id, term_id):
    """
    Assemble the report card for one student and term.

    Raises Student.DoesNotExist / Term.DoesNotExist when either is missing
    (a term from another school counts as missing).
    """
    from academics.models import ClassEnrollment
    from core.models import SchoolSettings, Term
    from students.models import Student
    from .models import AcademicGoal, GoalAnalysis, ScoreEntry, StudentTermReport

    student = Student.objects.select_related('school', 'campus').get(pk=student_id)
    term = Term.objects.select_related('academic_year').get(
        pk=term_id, academic_year__school_id=student.school_id
    )
    school_settings = SchoolSettings.load(student.school)

    # Report figures and ranks come from the same snapshot
    with transaction.atomic():
        report = StudentTermReport.objects.filter(
            student=student, term=term
        ).select_related('academic_class').first()
        enrollment = ClassEnrollment.objects.filter(
            student=student, term=term
        ).select_related('academic_class').first()

        entries = list(
            ScoreEntry.objects.filter(student=student, term=term)
            .select_related('subject')
            .order_by('-subject__is_core', 'subject__name')
        )

        members = load_cohort(term)
        standing = standing_for(student.pk, compute_standings(members))
        positions = subject_positions(term, members)

    if enrollment is not None:
        academic_class = enrollment.academic_class
    else:
        academic_class = report.academic_class if report else None

    subjects = []
    for entry in entries:
        position, size = positions.get((student.pk, entry.subject_id), (None, None))
        subjects.append({
            'subjectId': entry.subject_id,
            'subjectName': entry.subject.name,
            'isCore': entry.subject.is_core,
            'componentScores': entry.component_scores,
            'totalScore': _num(entry.total_score),
            'gradeLabel': entry.grade_label or None,
            'gpaValue': _num(entry.gpa_value),
            'remark': entry.grade_remark or None,
            'teacherComment': entry.teacher_comment or None,
            'subjectPosition': position,
            'subjectCohortSize': size,
        })

    summary = {
        'average': _num(report.average_score) if report else None,
        'totalScore': _num(report.total_score) if report else None,
        'subjectsCount': report.subjects_count if report else len(entries),
        'positionInArm': standing.cohort_rank,
        'cohortSize': standing.cohort_size,
        'positionInLevel': standing.level_rank,
        'levelSize': standing.level_size,
        'positionInCampus': standing.campus_rank,
        'campusTotal': standing.campus_total,
        'campusPercentile': _num(standing.campus_percentile),
        'gpaAverage': _num(gpa_average(entries)),
        'rankingSettled': recalculation_settled(student.school, term),
    }

    attendance = resolve_attendance(
        student,
        term,
        class_group_id=enrollment.class_group_id if enrollment else None,
        school_settings=school_settings,
    )

    goal = AcademicGoal.objects.filter(student=student, term=term).first()
    analysis = None
    if report is not None:
        analysis = GoalAnalysis.objects.filter(report=report).first()

    logger.debug(
        f"Built report for student {student.pk}, term {term.pk}: "
        f"{len(subjects)} subjects, position {standing.cohort_rank}/{standing.cohort_size}"
    )
    return {
        'student': _student_payload(student, academic_class),
        'term': _term_payload(term),
        'schoolConfig': school_settings.as_snapshot(),
        'subjects': subjects,
        'summary': summary,
        'attendance': attendance.as_payload(),
        'comments': {
            'teacher': (report.teacher_comment or None) if report else None,
            'principal': (report.principal_comment or None) if report else None,
        },
        'isPublished': report.is_published if report else False,
        'academicGoal': goal.as_payload() if goal else None,
        'goalAnalysis': analysis.as_payload() if analysis else None,
    }
