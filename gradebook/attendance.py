"""
Attendance reconciliation for report cards.

Figures come from the first resolver in ``CASCADE`` that produces a result:

    1. an override for the student's own class group
    2. an override for any other group the student belongs to
    3. counts from the daily register within the term dates
    4. the term's school-wide day count, with present days from the register

Resolvers read from an ``AttendanceContext`` built once per request, so the
cascade itself needs no database.
"""
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Optional

from . import config
from .aggregation import round2

logger = logging.getLogger(__name__)

SOURCE_OVERRIDE = 'override'
SOURCE_COMPUTED = 'computed'
SOURCE_TERM_DEFAULT = 'term_default'

# Register codes seen in imported data, normalised to one bucket each
STATUS_BUCKETS = {
    'present': 'present',
    'p': 'present',
    'late': 'late',
    'tardy': 'late',
    'l': 'late',
    't': 'late',
    'excused': 'excused',
    'e': 'excused',
    'excused absence': 'excused',
    'absent': 'unexcused',
    'a': 'unexcused',
    'unexcused': 'unexcused',
}


def attendance_rate(present, total):
    if not total:
        return Decimal('0.00')
    return round2(Decimal(present) / Decimal(total) * 100)


@dataclass
class AttendanceFigures:
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0
    unexcused: int = 0
    total: int = 0
    rate: Decimal = Decimal('0.00')
    source: str = SOURCE_COMPUTED
    degraded: bool = False
    computed: Optional['AttendanceFigures'] = None
    override_meta: Optional[dict] = None

    def __post_init__(self):
        self.rate = attendance_rate(self.present, self.total)

    def as_payload(self):
        payload = {
            'present': self.present,
            'absent': self.absent,
            'late': self.late,
            'excused': self.excused,
            'unexcused': self.unexcused,
            'total': self.total,
            'rate': float(self.rate),
            'source': self.source,
            'degraded': self.degraded,
            'overrideApplied': self.source == SOURCE_OVERRIDE,
            'overrideMeta': self.override_meta,
        }
        if self.computed is not None:
            payload['computed'] = {
                key: value for key, value in self.computed.as_payload().items()
                if key in ('present', 'absent', 'late', 'excused', 'unexcused', 'total', 'rate')
            }
        return payload


@dataclass
class OverrideRow:
    group_id: int
    total_days: int
    days_present: int
    comment: str = ''
    updated_by: str = ''
    updated_at: Optional[object] = None


@dataclass
class AttendanceContext:
    student_id: int
    term_id: int
    class_group_id: Optional[int] = None
    member_group_ids: frozenset = frozenset()
    # Overrides for (student, term) across all groups, most recent first
    overrides: list = field(default_factory=list)
    # Raw register statuses inside the term window
    statuses: list = field(default_factory=list)
    # School-wide day count for the term, if one is configured
    term_days: Optional[int] = None

    def tally(self):
        """Register counts, tolerant of legacy status codes."""
        counts = {'present': 0, 'late': 0, 'excused': 0, 'unexcused': 0}
        for status in self.statuses:
            bucket = STATUS_BUCKETS.get((status or '').strip().lower())
            if bucket:
                counts[bucket] += 1
        return AttendanceFigures(
            present=counts['present'],
            late=counts['late'],
            excused=counts['excused'],
            unexcused=counts['unexcused'],
            absent=counts['excused'] + counts['unexcused'],
            total=len(self.statuses),
            source=SOURCE_COMPUTED,
        )


def _figures_from_override(row, ctx, exact):
    present, total = row.days_present, row.total_days
    degraded = present > total
    if degraded:
        logger.warning(
            f"Attendance override for student {ctx.student_id}, term {ctx.term_id}, "
            f"group {row.group_id} has {present} days present of {total}; clamping"
        )
        present = total
    absent = max(total - present, 0)
    return AttendanceFigures(
        present=present,
        absent=absent,
        late=0,
        excused=0,
        unexcused=absent,
        total=total,
        source=SOURCE_OVERRIDE,
        degraded=degraded,
        computed=ctx.tally(),
        override_meta={
            'groupId': row.group_id,
            'exactGroupMatch': exact,
            'comment': row.comment or None,
            'updatedBy': row.updated_by or None,
            'updatedAt': row.updated_at.isoformat() if row.updated_at else None,
        },
    )


def exact_group_override(ctx):
    if ctx.class_group_id is None:
        return None
    for row in ctx.overrides:
        if row.group_id == ctx.class_group_id:
            return _figures_from_override(row, ctx, exact=True)
    return None


def any_group_override(ctx):
    candidates = [row for row in ctx.overrides if row.group_id in ctx.member_group_ids]
    if not candidates:
        return None
    row = candidates[0]
    if not config.ATTENDANCE_ANY_GROUP_OVERRIDE:
        logger.info(
            f"Ignoring attendance override from group {row.group_id} for student "
            f"{ctx.student_id}, term {ctx.term_id}: any-group overrides are disabled"
        )
        return None
    logger.warning(
        f"Using attendance override from group {row.group_id} for student {ctx.student_id}, "
        f"term {ctx.term_id} (class group: {ctx.class_group_id})"
    )
    return _figures_from_override(row, ctx, exact=False)


def register_counts(ctx):
    figures = ctx.tally()
    if figures.total == 0:
        return None
    min_coverage = Decimal(str(config.ATTENDANCE_MIN_COVERAGE or 0))
    if ctx.term_days and min_coverage > 0 and figures.total < min_coverage * ctx.term_days:
        logger.info(
            f"Register for student {ctx.student_id}, term {ctx.term_id} covers "
            f"{figures.total} of {ctx.term_days} days; falling back to term default"
        )
        return None
    return replace(figures, computed=ctx.tally())


def term_default(ctx):
    if not ctx.term_days:
        return None
    partial = ctx.tally()
    total = ctx.term_days
    present = min(partial.present, total)
    absent = max(total - present, 0)
    excused = min(partial.excused, absent)
    return AttendanceFigures(
        present=present,
        absent=absent,
        late=partial.late,
        excused=excused,
        unexcused=max(absent - excused, 0),
        total=total,
        source=SOURCE_TERM_DEFAULT,
        computed=partial,
    )


CASCADE = (
    exact_group_override,
    any_group_override,
    register_counts,
    term_default,
)


def reconcile(ctx, cascade=CASCADE):
    """Run the cascade; an empty register with no fallback yields zeros."""
    for resolver in cascade:
        figures = resolver(ctx)
        if figures is not None:
            return figures
    empty = ctx.tally()
    return replace(empty, computed=ctx.tally())


# ---------------------------------------------------------------------------
# Loading

def derive_class_group_id(student_id, term):
    """
    The group a student's attendance is taken in for a term: the enrollment's
    group, else a class-teacher group (term-specific groups first).
    """
    from academics.models import ClassEnrollment, ClassGroup, ClassGroupMember

    enrollment_group = ClassEnrollment.objects.filter(
        student_id=student_id, term=term, class_group__isnull=False
    ).values_list('class_group_id', flat=True).first()
    if enrollment_group:
        return enrollment_group

    memberships = ClassGroupMember.objects.filter(
        student_id=student_id,
        group__group_type=ClassGroup.GroupType.CLASS_TEACHER,
    ).values_list('group_id', 'group__term_id')
    candidates = [
        (group_term_id != term.pk, group_id)
        for group_id, group_term_id in memberships
        if group_term_id in (None, term.pk)
    ]
    if not candidates:
        return None
    return min(candidates)[1]


def load_attendance_context(student, term, class_group_id=None, school_settings=None):
    from academics.models import AttendanceOverride, AttendanceRecord, ClassGroupMember

    if class_group_id is None:
        class_group_id = derive_class_group_id(student.pk, term)

    member_group_ids = frozenset(
        ClassGroupMember.objects.filter(student=student).values_list('group_id', flat=True)
    )

    overrides = [
        OverrideRow(
            group_id=o.group_id,
            total_days=o.total_days,
            days_present=o.days_present,
            comment=o.comment,
            updated_by=o.updated_by,
            updated_at=o.updated_at,
        )
        for o in AttendanceOverride.objects.filter(student=student, term=term).order_by('-updated_at', '-pk')
    ]

    records = AttendanceRecord.objects.filter(
        member__student=student,
        session_date__isnull=False,
    )
    if term.start_date:
        records = records.filter(session_date__gte=term.start_date)
    if term.end_date:
        records = records.filter(session_date__lte=term.end_date)

    term_days = term.total_school_days
    if not term_days and school_settings is not None:
        term_days = school_settings.total_school_days

    return AttendanceContext(
        student_id=student.pk,
        term_id=term.pk,
        class_group_id=class_group_id,
        member_group_ids=member_group_ids,
        overrides=overrides,
        statuses=list(records.values_list('status', flat=True)),
        term_days=term_days,
    )


def resolve_attendance(student, term, class_group_id=None, school_settings=None):
    """Authoritative attendance figures for a student in a term."""
    ctx = load_attendance_context(student, term, class_group_id, school_settings)
    figures = reconcile(ctx)
    logger.debug(
        f"Attendance for student {student.pk}, term {term.pk}: "
        f"{figures.present}/{figures.total} ({figures.source})"
    )
    return figures
