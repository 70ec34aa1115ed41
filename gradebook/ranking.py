"""
Cohort ranking.

A term's eligible population is materialized once (``load_cohort``) and every
rank, size and percentile is computed in memory from that snapshot, so all
figures on one report agree with each other.

Scopes:
    cohort  campus + session + term + class + arm
    level   campus + session + term + level
    campus  campus + session + term
"""
import logging
from collections import defaultdict, namedtuple
from decimal import Decimal

from django.db import transaction
from django.db.models import OuterRef, Subquery

from . import config
from .aggregation import round2
from .exceptions import EmptyCohortError

logger = logging.getLogger(__name__)

DENSE = 'dense'
COMPETITION = 'competition'

CohortMember = namedtuple(
    'CohortMember',
    ['student_id', 'campus_id', 'session_id', 'term_id', 'class_id', 'arm', 'level', 'average'],
)

CohortStanding = namedtuple(
    'CohortStanding',
    ['cohort_rank', 'cohort_size', 'level_rank', 'level_size',
     'campus_rank', 'campus_total', 'campus_percentile'],
)

EMPTY_STANDING = CohortStanding(None, None, None, None, None, None, None)


def _score(value):
    # Missing averages rank as 0
    if value is None:
        return Decimal('0')
    return Decimal(str(value)) if not isinstance(value, Decimal) else value


def dense_rank(values):
    """Ranks in input order; ties share a rank and the next rank follows on (1, 1, 2)."""
    values = [_score(v) for v in values]
    positions = {v: i for i, v in enumerate(sorted(set(values), reverse=True), 1)}
    return [positions[v] for v in values]


def competition_rank(values):
    """Ranks in input order; ties share a rank and leave a gap (1, 1, 3)."""
    values = [_score(v) for v in values]
    first_seen = {}
    for i, v in enumerate(sorted(values, reverse=True), 1):
        first_seen.setdefault(v, i)
    return [first_seen[v] for v in values]


RANKERS = {
    DENSE: dense_rank,
    COMPETITION: competition_rank,
}


def rank_values(values, method=None):
    method = method or config.RANKING_METHOD
    try:
        ranker = RANKERS[method]
    except KeyError:
        raise ValueError(f"Unknown ranking method '{method}'. Choose from: {', '.join(RANKERS)}")
    return ranker(values)


def rank_scope(members, method=None):
    """Rank one scope by average, highest first. Returns {student_id: rank}."""
    members = list(members)
    if not members:
        raise EmptyCohortError('Cannot rank an empty cohort')
    ranks = rank_values([m.average for m in members], method)
    return {m.student_id: rank for m, rank in zip(members, ranks)}


def cohort_key(member):
    return (member.campus_id, member.session_id, member.term_id, member.class_id, member.arm)


def level_key(member):
    return (member.campus_id, member.session_id, member.term_id, member.level)


def campus_key(member):
    return (member.campus_id, member.session_id, member.term_id)


def _group(members, key):
    groups = defaultdict(list)
    for member in members:
        groups[key(member)].append(member)
    return groups


def _rank_groups(members, key, method):
    ranks, sizes = {}, {}
    for group in _group(members, key).values():
        for student_id, rank in rank_scope(group, method).items():
            ranks[student_id] = rank
            sizes[student_id] = len(group)
    return ranks, sizes


def percentile(rank, total):
    if not total or rank is None:
        return None
    return round2(Decimal(total - rank) / Decimal(total) * 100)


def compute_standings(members, method=None):
    """Every student's standing in each scope, from one materialized population."""
    members = list(members)
    cohort_ranks, cohort_sizes = _rank_groups(members, cohort_key, method)
    level_ranks, level_sizes = _rank_groups(members, level_key, method)
    campus_ranks, campus_sizes = _rank_groups(members, campus_key, method)

    standings = {}
    for member in members:
        sid = member.student_id
        standings[sid] = CohortStanding(
            cohort_rank=cohort_ranks[sid],
            cohort_size=cohort_sizes[sid],
            level_rank=level_ranks[sid],
            level_size=level_sizes[sid],
            campus_rank=campus_ranks[sid],
            campus_total=campus_sizes[sid],
            campus_percentile=percentile(campus_ranks[sid], campus_sizes[sid]),
        )
    return standings


def standing_for(student_id, standings):
    """A student outside every eligible cohort gets an all-empty standing."""
    return standings.get(student_id, EMPTY_STANDING)


def load_cohort(term):
    """
    Materialize the ranking population for a term.

    Everyone enrolled for the term counts, with or without a report (a
    missing average ranks as 0), plus anyone holding a report without an
    enrollment. Excluded statuses never count.
    """
    from academics.models import ClassEnrollment
    from .models import StudentTermReport

    excluded = tuple(config.EXCLUDED_STUDENT_STATUSES)
    session_id = term.academic_year_id
    average = StudentTermReport.objects.filter(
        student_id=OuterRef('student_id'), term_id=term.pk
    ).values('average_score')[:1]

    with transaction.atomic():
        enrolled = list(
            ClassEnrollment.objects.filter(term=term)
            .exclude(student__status__in=excluded)
            .annotate(average=Subquery(average))
            .values_list(
                'student_id', 'academic_class__campus_id', 'student__campus_id',
                'academic_class_id', 'academic_class__arm', 'academic_class__level', 'average',
            )
        )
        unenrolled = list(
            StudentTermReport.objects.filter(term=term)
            .exclude(student__status__in=excluded)
            .exclude(student__class_enrollments__term=term)
            .values_list(
                'student_id', 'academic_class__campus_id', 'student__campus_id',
                'academic_class_id', 'academic_class__arm', 'academic_class__level', 'average_score',
            )
        )

    members = [
        CohortMember(
            student_id=student_id,
            campus_id=class_campus_id or student_campus_id,
            session_id=session_id,
            term_id=term.pk,
            class_id=class_id,
            arm=arm or '',
            level=level or '',
            average=avg,
        )
        for student_id, class_campus_id, student_campus_id, class_id, arm, level, avg
        in enrolled + unenrolled
    ]
    logger.debug(f"Loaded cohort of {len(members)} students for term {term.pk}")
    return members


def subject_positions(term, members=None, method=None):
    """
    Per-subject positions within each student's cohort scope.

    Returns {(student_id, subject_id): (position, size)}. A missing total ranks as 0.
    """
    from .models import ScoreEntry

    if members is None:
        members = load_cohort(term)
    scope_of = {m.student_id: cohort_key(m) for m in members}

    entries = ScoreEntry.objects.filter(
        term=term, student_id__in=list(scope_of)
    ).values_list('student_id', 'subject_id', 'total_score')

    groups = defaultdict(list)
    for student_id, subject_id, total in entries:
        groups[(scope_of[student_id], subject_id)].append((student_id, total))

    positions = {}
    for (scope, subject_id), rows in groups.items():
        ranks = rank_values([total for _, total in rows], method)
        for (student_id, _), rank in zip(rows, ranks):
            positions[(student_id, subject_id)] = (rank, len(rows))
    return positions


def assign_class_positions(term, members=None, method=None):
    """
    Store each report's cohort rank as ``position_in_class`` from one snapshot.
    Reports outside the eligible population are cleared.
    """
    from .models import StudentTermReport

    if members is None:
        members = load_cohort(term)
    standings = compute_standings(members, method)

    reports = list(StudentTermReport.objects.filter(term=term))
    to_update = []
    for report in reports:
        position = standing_for(report.student_id, standings).cohort_rank
        if report.position_in_class != position:
            report.position_in_class = position
            to_update.append(report)

    StudentTermReport.objects.bulk_update(
        to_update,
        ['position_in_class'],
        batch_size=config.BULK_UPDATE_BATCH_SIZE
    )
    logger.info(f"Assigned class positions for term {term.pk}: {len(to_update)} of {len(reports)} changed")
    return len(to_update)
