"""
Score to grade resolution.

Rules are plain objects exposing ``min_score``, ``max_score``, ``grade_label``,
``gpa_value`` and ``remark`` (model instances or GradeBand tuples), so the
resolver runs without a database.
"""
import logging
from collections import defaultdict, namedtuple
from decimal import Decimal

from .exceptions import NoMatchingRuleError

logger = logging.getLogger(__name__)

GradeBand = namedtuple('GradeBand', ['min_score', 'max_score', 'grade_label', 'gpa_value', 'remark'])
GradeResult = namedtuple('GradeResult', ['label', 'gpa', 'remark'])

# Smallest score step stored by the models (two decimal places)
SCORE_STEP = Decimal('0.01')


def to_decimal(value):
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _ordered(rules):
    return sorted(rules, key=lambda r: to_decimal(r.min_score))


def _match(score, rules):
    for rule in _ordered(rules):
        if to_decimal(rule.min_score) <= score <= to_decimal(rule.max_score):
            return GradeResult(
                label=rule.grade_label,
                gpa=to_decimal(rule.gpa_value),
                remark=rule.remark or '',
            )
    return None


def resolve_grade(score, rules, subject_rules=(), scheme=None):
    """
    Map a score to a grade.

    Subject-specific rules are consulted first, then the scheme's own rules,
    each in ascending min_score order; the first inclusive band wins.
    Raises NoMatchingRuleError when no band covers the score.
    """
    if score is None:
        raise NoMatchingRuleError(score, scheme)
    score = to_decimal(score)

    if subject_rules:
        result = _match(score, subject_rules)
        if result is not None:
            return result

    result = _match(score, rules)
    if result is None:
        raise NoMatchingRuleError(score, scheme)
    return result


def find_coverage_gaps(rules, lower=Decimal('0'), upper=Decimal('100')):
    """
    Return (start, end) score intervals within [lower, upper] that no rule covers.

    Bands are inclusive and scores are stored to two decimal places, so
    [70, 79.99] and [80, 100] are contiguous.
    """
    lower, upper = to_decimal(lower), to_decimal(upper)
    gaps = []
    cursor = lower
    for rule in _ordered(rules):
        start, end = to_decimal(rule.min_score), to_decimal(rule.max_score)
        if end < cursor:
            continue
        if start > cursor:
            gaps.append((cursor, min(start - SCORE_STEP, upper)))
        cursor = max(cursor, end + SCORE_STEP)
        if cursor > upper:
            break
    if cursor <= upper:
        gaps.append((cursor, upper))
    return gaps


class SchemeRules:
    """
    Snapshot of a grading scheme's bands, read once and reused for every
    entry in a batch so all entries see the same scheme.
    """

    def __init__(self, scheme, rules, subject_rules=None):
        self.scheme = scheme
        self.rules = list(rules)
        self.subject_rules = dict(subject_rules or {})

    @classmethod
    def load(cls, scheme):
        rules = [
            GradeBand(r.min_score, r.max_score, r.grade_label, r.gpa_value, r.remark)
            for r in scheme.rules.all()
        ]
        subject_rules = defaultdict(list)
        for r in scheme.subject_rules.all():
            subject_rules[r.subject_id].append(
                GradeBand(r.min_score, r.max_score, r.grade_label, r.gpa_value, r.remark)
            )
        if not rules:
            logger.warning(f"Grading scheme '{scheme}' has no rules")
        return cls(scheme, rules, subject_rules)

    @property
    def scheme_id(self):
        return getattr(self.scheme, 'pk', None)

    def resolve(self, score, subject_id=None):
        return resolve_grade(
            score,
            self.rules,
            subject_rules=self.subject_rules.get(subject_id, ()),
            scheme=self.scheme,
        )


def effective_scheme(academic_class, school_settings):
    """A class's pinned scheme wins over the school's active scheme."""
    if academic_class is not None and academic_class.grading_scheme_id:
        return academic_class.grading_scheme
    if school_settings is not None:
        return school_settings.active_grading_scheme
    return None
