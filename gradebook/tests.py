import json
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import connection
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from academics.models import (
    AcademicClass, AttendanceOverride, AttendanceRecord, ClassEnrollment,
    ClassGroup, ClassGroupMember, Subject,
)
from core.models import AcademicYear, Campus, School, SchoolSettings, Term
from students.models import Student

from .aggregation import aggregate, grade_entry, record_scores, round2, sync_term_report
from .attendance import (
    AttendanceContext, OverrideRow, SOURCE_COMPUTED, SOURCE_OVERRIDE, SOURCE_TERM_DEFAULT,
    derive_class_group_id, reconcile, resolve_attendance,
)
from .exceptions import EmptyCohortError, NoMatchingRuleError
from .grading import GradeBand, SchemeRules, effective_scheme, find_coverage_gaps, resolve_grade
from .models import (
    AcademicGoal, GoalAnalysis, GradingScheme, GradingSchemeRule, RecalculationRun,
    ScoreEntry, StudentTermReport, SubjectGradingRule,
)
from .ranking import (
    EMPTY_STANDING, CohortMember, assign_class_positions, competition_rank, compute_standings,
    dense_rank, load_cohort, percentile, rank_scope, rank_values, standing_for, subject_positions,
)
from .recalculation import recalculate_all, recalculation_settled
from .reports import build_report
from .tasks import recalculate_grades_task


User = get_user_model()

BANDS = [
    ('C', '0.00', '69.99', '2.00', 'Credit'),
    ('B', '70.00', '79.00', '3.00', 'Very Good'),
    ('A', '80.00', '100.00', '4.00', 'Excellent'),
]


def band(label, low, high, gpa=None, remark=''):
    return GradeBand(Decimal(low), Decimal(high), label, Decimal(gpa) if gpa else None, remark)


class GradebookTestCase(TestCase):
    """Shared fixture: one school, one term, two arms of JSS 1 and a scheme."""

    def setUp(self):
        cache.clear()
        self.school = School.objects.create(name='Unity Park School', code='ups')
        self.campus = Campus.objects.create(school=self.school, name='Main')
        self.year = AcademicYear.objects.create(
            school=self.school,
            name='2024/2025',
            start_date=date(2024, 9, 1),
            end_date=date(2025, 7, 31),
            is_current=True,
        )
        self.term = Term.objects.create(
            academic_year=self.year,
            name='First Term',
            term_number=1,
            start_date=date(2024, 9, 1),
            end_date=date(2024, 12, 15),
            is_current=True,
        )
        self.gold = AcademicClass.objects.create(
            school=self.school, campus=self.campus, name='JSS 1 Gold', level='JSS 1', arm='Gold'
        )
        self.blue = AcademicClass.objects.create(
            school=self.school, campus=self.campus, name='JSS 1 Blue', level='JSS 1', arm='Blue'
        )
        self.maths = Subject.objects.create(school=self.school, name='Mathematics', short_name='MTH')
        self.english = Subject.objects.create(school=self.school, name='English Language', short_name='ENG')

        self.scheme = GradingScheme.objects.create(school=self.school, name='Standard', gpa_max=Decimal('4.00'))
        for label, low, high, gpa, remark in BANDS:
            GradingSchemeRule.objects.create(
                scheme=self.scheme, grade_label=label, min_score=low, max_score=high,
                gpa_value=gpa, remark=remark,
            )
        self.school_settings = SchoolSettings.load(self.school)
        self.school_settings.active_grading_scheme = self.scheme
        self.school_settings.save()
        self.rules = SchemeRules.load(self.scheme)
        self._admissions = 0

    def make_student(self, first_name, academic_class=None, group=None, status=Student.Status.ACTIVE):
        self._admissions += 1
        student = Student.objects.create(
            school=self.school,
            campus=self.campus,
            first_name=first_name,
            last_name='Mensah',
            admission_number=f'ADM{self._admissions:03d}',
            status=status,
        )
        if academic_class is not None:
            ClassEnrollment.objects.create(
                student=student, term=self.term, academic_class=academic_class, class_group=group
            )
        return student

    def add_entry(self, student, scores, subject=None, academic_class=None):
        entry = ScoreEntry(
            school=self.school,
            student=student,
            term=self.term,
            academic_class=academic_class or self.gold,
            subject=subject or self.maths,
        )
        return record_scores(entry, scores, self.rules)

    def add_ungraded_entry(self, student, scores, subject=None, academic_class=None):
        return ScoreEntry.objects.create(
            school=self.school,
            student=student,
            term=self.term,
            academic_class=academic_class or self.gold,
            subject=subject or self.maths,
            component_scores=scores,
        )


# ---------------------------------------------------------------------------
# Grade resolution

class ResolveGradeTest(SimpleTestCase):
    """Tests for score to grade resolution."""

    def setUp(self):
        self.rules = [
            band('A', '80', '100', '4.00', 'Excellent'),
            band('C', '0', '69', '2.00', 'Credit'),
            band('B', '70', '79', '3.00', 'Very Good'),
        ]

    def test_band_boundaries_are_inclusive(self):
        self.assertEqual(resolve_grade(79, self.rules).label, 'B')
        self.assertEqual(resolve_grade(80, self.rules).label, 'A')
        self.assertEqual(resolve_grade(70, self.rules).label, 'B')
        self.assertEqual(resolve_grade(100, self.rules).label, 'A')
        self.assertEqual(resolve_grade(0, self.rules).label, 'C')

    def test_result_carries_gpa_and_remark(self):
        result = resolve_grade(Decimal('85.50'), self.rules)
        self.assertEqual(result.gpa, Decimal('4.00'))
        self.assertEqual(result.remark, 'Excellent')

    def test_score_in_gap_raises(self):
        with self.assertRaises(NoMatchingRuleError) as ctx:
            resolve_grade(Decimal('79.5'), self.rules)
        self.assertEqual(ctx.exception.score, Decimal('79.5'))

    def test_missing_score_raises(self):
        with self.assertRaises(NoMatchingRuleError):
            resolve_grade(None, self.rules)

    def test_score_above_scale_raises(self):
        with self.assertRaises(NoMatchingRuleError):
            resolve_grade(101, self.rules)

    def test_lowest_band_wins_when_bands_overlap(self):
        rules = [band('X', '50', '100'), band('Y', '40', '60')]
        self.assertEqual(resolve_grade(55, rules).label, 'Y')

    def test_subject_rules_take_precedence(self):
        subject_rules = [band('A*', '90', '100', '4.00', 'Distinction')]
        self.assertEqual(resolve_grade(95, self.rules, subject_rules=subject_rules).label, 'A*')

    def test_falls_back_to_scheme_rules_when_subject_rules_miss(self):
        subject_rules = [band('A*', '90', '100')]
        self.assertEqual(resolve_grade(85, self.rules, subject_rules=subject_rules).label, 'A')

    def test_scheme_rules_snapshot_resolves_per_subject(self):
        rules = SchemeRules(None, self.rules, {7: [band('P', '0', '100', remark='Pass')]})
        self.assertEqual(rules.resolve(85, subject_id=7).label, 'P')
        self.assertEqual(rules.resolve(85, subject_id=8).label, 'A')


class CoverageGapsTest(SimpleTestCase):
    """Tests for grading scheme coverage diagnostics."""

    def test_integer_bands_leave_fractional_gaps(self):
        rules = [band('C', '0', '69'), band('B', '70', '79'), band('A', '80', '100')]
        self.assertEqual(
            find_coverage_gaps(rules),
            [(Decimal('69.01'), Decimal('69.99')), (Decimal('79.01'), Decimal('79.99'))],
        )

    def test_contiguous_bands_have_no_gaps(self):
        rules = [band('B', '70', '100'), band('C', '0', '69.99')]
        self.assertEqual(find_coverage_gaps(rules), [])

    def test_uncovered_top_and_bottom(self):
        rules = [band('B', '10', '90')]
        self.assertEqual(
            find_coverage_gaps(rules),
            [(Decimal('0'), Decimal('9.99')), (Decimal('90.01'), Decimal('100'))],
        )

    def test_empty_scheme_is_one_gap(self):
        self.assertEqual(find_coverage_gaps([]), [(Decimal('0'), Decimal('100'))])


# ---------------------------------------------------------------------------
# Aggregation

class AggregateTest(SimpleTestCase):
    """Tests for component score aggregation."""

    def test_missing_components_contribute_zero(self):
        total = aggregate({'CA1': 15, 'CA2': None, 'PROJECT': '', 'EXAM': '60.5'})
        self.assertEqual(total, Decimal('75.50'))

    def test_empty_components(self):
        self.assertEqual(aggregate({}), Decimal('0.00'))
        self.assertEqual(aggregate(None), Decimal('0.00'))

    def test_non_numeric_component_raises(self):
        with self.assertRaises(ValueError):
            aggregate({'CA1': 'absent'})

    def test_non_finite_component_raises(self):
        for value in ('NaN', 'sNaN', 'Infinity', '-Infinity'):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    aggregate({'CA1': 10, 'EXAM': value})

    def test_total_too_large_to_round_raises(self):
        with self.assertRaises(ValueError):
            aggregate({'EXAM': '1e30'})

    def test_round2_rounds_half_up(self):
        self.assertEqual(round2(Decimal('2.345')), Decimal('2.35'))
        self.assertEqual(round2(Decimal('81.5')), Decimal('81.50'))
        self.assertIsNone(round2(None))

    def test_grade_entry_reports_changes(self):
        rules = SchemeRules(None, [band('A', '80', '100', '4.00', 'Excellent'), band('F', '0', '79.99')])
        entry = ScoreEntry(component_scores={'CA': 30, 'EXAM': 55})
        self.assertTrue(grade_entry(entry, rules))
        self.assertEqual(entry.total_score, Decimal('85.00'))
        self.assertEqual(entry.grade_label, 'A')
        self.assertEqual(entry.gpa_value, Decimal('4.00'))
        self.assertFalse(grade_entry(entry, rules))

    def test_grade_entry_leaves_entry_untouched_on_gap(self):
        rules = SchemeRules(None, [band('A', '80', '100')])
        entry = ScoreEntry(component_scores={'EXAM': 50}, grade_label='OLD')
        with self.assertRaises(NoMatchingRuleError):
            grade_entry(entry, rules)
        self.assertEqual(entry.grade_label, 'OLD')
        self.assertIsNone(entry.total_score)


class TermReportSyncTest(GradebookTestCase):
    """Tests for keeping StudentTermReport in sync with ScoreEntries."""

    def test_saving_entries_updates_report(self):
        student = self.make_student('Ama', self.gold)
        self.add_entry(student, {'CA': 30, 'EXAM': 50})
        self.add_entry(student, {'CA': 25.5, 'EXAM': 50}, subject=self.english)

        report = StudentTermReport.objects.get(student=student, term=self.term)
        self.assertEqual(report.total_score, Decimal('155.50'))
        self.assertEqual(report.average_score, Decimal('77.75'))
        self.assertEqual(report.subjects_count, 2)
        self.assertEqual(report.academic_class, self.gold)

    def test_deleting_entry_updates_report(self):
        student = self.make_student('Kofi', self.gold)
        self.add_entry(student, {'EXAM': 90})
        entry = self.add_entry(student, {'EXAM': 70}, subject=self.english)
        entry.delete()

        report = StudentTermReport.objects.get(student=student, term=self.term)
        self.assertEqual(report.average_score, Decimal('90.00'))
        self.assertEqual(report.subjects_count, 1)

    def test_no_entries_no_report(self):
        student = self.make_student('Esi', self.gold)
        self.assertIsNone(sync_term_report(student.pk, self.term.pk))
        self.assertFalse(StudentTermReport.objects.filter(student=student).exists())

    def test_record_scores_propagates_gap_error(self):
        student = self.make_student('Yaw', self.gold)
        with self.assertRaises(NoMatchingRuleError):
            self.add_entry(student, {'EXAM': '79.5'})
        self.assertFalse(ScoreEntry.objects.filter(student=student).exists())

    def test_effective_scheme_prefers_class_pin(self):
        other = GradingScheme.objects.create(school=self.school, name='Cambridge')
        self.blue.grading_scheme = other
        self.blue.save()
        self.assertEqual(effective_scheme(self.blue, self.school_settings), other)
        self.assertEqual(effective_scheme(self.gold, self.school_settings), self.scheme)
        self.assertIsNone(effective_scheme(None, None))


class GradeBandModelTest(GradebookTestCase):
    """Tests for grade band validation."""

    def test_overlapping_band_rejected(self):
        rule = GradingSchemeRule(scheme=self.scheme, grade_label='X', min_score='75', max_score='85')
        with self.assertRaises(ValidationError):
            rule.clean()

    def test_min_above_max_rejected(self):
        rule = GradingSchemeRule(scheme=self.scheme, grade_label='X', min_score='90', max_score='85')
        with self.assertRaises(ValidationError):
            rule.clean()

    def test_subject_bands_only_checked_against_same_subject(self):
        SubjectGradingRule.objects.create(
            scheme=self.scheme, subject=self.maths, grade_label='A*', min_score='90', max_score='100'
        )
        rule = SubjectGradingRule(
            scheme=self.scheme, subject=self.english, grade_label='A*', min_score='85', max_score='100'
        )
        rule.clean()

    def test_validate_coverage(self):
        self.assertEqual(self.scheme.validate_coverage(), [(Decimal('79.01'), Decimal('79.99'))])


# ---------------------------------------------------------------------------
# Attendance

def override_row(group_id, total, present, minutes=0):
    return OverrideRow(
        group_id=group_id,
        total_days=total,
        days_present=present,
        comment='Entered from paper register',
        updated_by='registrar',
        updated_at=datetime(2024, 12, 10, 9, minutes, tzinfo=dt_timezone.utc),
    )


class AttendanceCascadeTest(SimpleTestCase):
    """Tests for attendance resolution order."""

    def test_exact_override_wins(self):
        ctx = AttendanceContext(
            student_id=1,
            term_id=1,
            class_group_id=10,
            member_group_ids=frozenset({10, 20}),
            overrides=[override_row(20, 50, 45, minutes=30), override_row(10, 60, 54)],
            statuses=['present'] * 5,
            term_days=70,
        )
        figures = reconcile(ctx)
        self.assertEqual(figures.source, SOURCE_OVERRIDE)
        self.assertEqual(figures.override_meta['groupId'], 10)
        self.assertTrue(figures.override_meta['exactGroupMatch'])
        self.assertEqual((figures.present, figures.total, figures.absent), (54, 60, 6))
        self.assertEqual(figures.unexcused, 6)
        self.assertEqual((figures.late, figures.excused), (0, 0))
        self.assertEqual(figures.rate, Decimal('90.00'))
        self.assertEqual(figures.computed.present, 5)

    def test_any_group_override_used_and_logged(self):
        ctx = AttendanceContext(
            student_id=1,
            term_id=1,
            class_group_id=10,
            member_group_ids=frozenset({10, 20}),
            overrides=[override_row(20, 50, 40)],
            statuses=['present'],
        )
        with self.assertLogs('gradebook.attendance', level='WARNING') as logs:
            figures = reconcile(ctx)
        self.assertEqual(figures.source, SOURCE_OVERRIDE)
        self.assertFalse(figures.override_meta['exactGroupMatch'])
        self.assertEqual(figures.override_meta['groupId'], 20)
        self.assertIn('group 20', logs.output[0])

    @override_settings(GRADEBOOK_ATTENDANCE_ANY_GROUP_OVERRIDE=False)
    def test_any_group_override_can_be_disabled(self):
        ctx = AttendanceContext(
            student_id=1,
            term_id=1,
            class_group_id=10,
            member_group_ids=frozenset({10, 20}),
            overrides=[override_row(20, 50, 40)],
            statuses=['present', 'absent'],
        )
        figures = reconcile(ctx)
        self.assertEqual(figures.source, SOURCE_COMPUTED)
        self.assertEqual(figures.total, 2)

    def test_override_from_former_group_ignored(self):
        ctx = AttendanceContext(
            student_id=1,
            term_id=1,
            class_group_id=10,
            member_group_ids=frozenset({10}),
            overrides=[override_row(30, 50, 40)],
        )
        self.assertEqual(reconcile(ctx).source, SOURCE_COMPUTED)

    def test_computed_counts_legacy_codes(self):
        ctx = AttendanceContext(
            student_id=1,
            term_id=1,
            statuses=['present', 'P', 'late', 'Tardy', 'excused', 'excused absence', 'absent', 'A'],
        )
        figures = reconcile(ctx)
        self.assertEqual(figures.source, SOURCE_COMPUTED)
        self.assertEqual(figures.present, 2)
        self.assertEqual(figures.late, 2)
        self.assertEqual(figures.excused, 2)
        self.assertEqual(figures.unexcused, 2)
        self.assertEqual(figures.absent, 4)
        self.assertEqual(figures.total, 8)
        self.assertEqual(figures.rate, Decimal('25.00'))

    def test_term_default_when_register_empty(self):
        ctx = AttendanceContext(student_id=1, term_id=1, term_days=60)
        figures = reconcile(ctx)
        self.assertEqual(figures.source, SOURCE_TERM_DEFAULT)
        self.assertEqual((figures.present, figures.absent, figures.total), (0, 60, 60))
        self.assertEqual(figures.unexcused, 60)
        self.assertEqual(figures.rate, Decimal('0.00'))

    @override_settings(GRADEBOOK_ATTENDANCE_MIN_COVERAGE=0.5)
    def test_sparse_register_falls_to_term_default(self):
        ctx = AttendanceContext(
            student_id=1,
            term_id=1,
            statuses=['present'] * 9 + ['excused'],
            term_days=60,
        )
        figures = reconcile(ctx)
        self.assertEqual(figures.source, SOURCE_TERM_DEFAULT)
        self.assertEqual(figures.present, 9)
        self.assertEqual(figures.absent, 51)
        self.assertEqual(figures.excused, 1)
        self.assertEqual(figures.unexcused, 50)
        self.assertEqual(figures.rate, Decimal('15.00'))

    def test_nothing_recorded_yields_zeros(self):
        figures = reconcile(AttendanceContext(student_id=1, term_id=1))
        self.assertEqual(figures.source, SOURCE_COMPUTED)
        self.assertEqual(figures.total, 0)
        self.assertEqual(figures.rate, Decimal('0.00'))

    def test_override_with_zero_days_has_zero_rate(self):
        ctx = AttendanceContext(
            student_id=1, term_id=1, class_group_id=10,
            member_group_ids=frozenset({10}), overrides=[override_row(10, 0, 0)],
        )
        figures = reconcile(ctx)
        self.assertEqual(figures.source, SOURCE_OVERRIDE)
        self.assertEqual(figures.rate, Decimal('0.00'))

    def test_degraded_override_is_clamped(self):
        ctx = AttendanceContext(
            student_id=1, term_id=1, class_group_id=10,
            member_group_ids=frozenset({10}), overrides=[override_row(10, 60, 70)],
        )
        with self.assertLogs('gradebook.attendance', level='WARNING'):
            figures = reconcile(ctx)
        self.assertTrue(figures.degraded)
        self.assertEqual((figures.present, figures.absent, figures.total), (60, 0, 60))
        self.assertEqual(figures.rate, Decimal('100.00'))

    def test_payload_shape(self):
        ctx = AttendanceContext(
            student_id=1, term_id=1, class_group_id=10,
            member_group_ids=frozenset({10}), overrides=[override_row(10, 3, 2)],
            statuses=['present'],
        )
        payload = reconcile(ctx).as_payload()
        self.assertTrue(payload['overrideApplied'])
        self.assertEqual(payload['rate'], 66.67)
        self.assertEqual(payload['computed']['present'], 1)
        self.assertEqual(payload['overrideMeta']['updatedBy'], 'registrar')
        self.assertEqual(payload['overrideMeta']['updatedAt'], '2024-12-10T09:00:00+00:00')


class AttendanceLoadingTest(GradebookTestCase):
    """Tests for resolving attendance from the database."""

    def setUp(self):
        super().setUp()
        self.homeroom = ClassGroup.objects.create(school=self.school, name='JSS 1 Gold', term=self.term)
        self.club = ClassGroup.objects.create(
            school=self.school, name='Debate Club', group_type=ClassGroup.GroupType.CLUB
        )
        self.student = self.make_student('Akua', self.gold)
        self.member = ClassGroupMember.objects.create(group=self.homeroom, student=self.student)
        ClassGroupMember.objects.create(group=self.club, student=self.student)

    def mark(self, day, status):
        AttendanceRecord.objects.create(member=self.member, session_date=day, status=status)

    def test_derives_class_teacher_group(self):
        self.assertEqual(derive_class_group_id(self.student.pk, self.term), self.homeroom.pk)

    def test_term_specific_group_preferred(self):
        standing = ClassGroup.objects.create(school=self.school, name='Form Group')
        ClassGroupMember.objects.create(group=standing, student=self.student)
        self.assertEqual(derive_class_group_id(self.student.pk, self.term), self.homeroom.pk)

    def test_enrollment_group_wins(self):
        ClassEnrollment.objects.filter(student=self.student).update(class_group=self.club)
        self.assertEqual(derive_class_group_id(self.student.pk, self.term), self.club.pk)

    def test_records_outside_term_ignored(self):
        self.mark(date(2024, 9, 2), 'present')
        self.mark(date(2024, 9, 3), 'late')
        self.mark(date(2025, 1, 10), 'absent')
        figures = resolve_attendance(self.student, self.term)
        self.assertEqual(figures.source, SOURCE_COMPUTED)
        self.assertEqual((figures.present, figures.late, figures.total), (1, 1, 2))

    def test_override_supersedes_records(self):
        self.mark(date(2024, 9, 2), 'present')
        AttendanceOverride.objects.create(
            student=self.student, group=self.homeroom, term=self.term, total_days=60, days_present=58
        )
        figures = resolve_attendance(self.student, self.term)
        self.assertEqual(figures.source, SOURCE_OVERRIDE)
        self.assertEqual(figures.present, 58)
        self.assertEqual(figures.computed.total, 1)

    def test_club_override_used_when_homeroom_has_none(self):
        AttendanceOverride.objects.create(
            student=self.student, group=self.club, term=self.term, total_days=40, days_present=30
        )
        with self.assertLogs('gradebook.attendance', level='WARNING'):
            figures = resolve_attendance(self.student, self.term)
        self.assertEqual(figures.override_meta['groupId'], self.club.pk)

    def test_term_days_fall_back_to_school_settings(self):
        self.school_settings.total_school_days = 65
        self.school_settings.save()
        figures = resolve_attendance(self.student, self.term, school_settings=self.school_settings)
        self.assertEqual(figures.source, SOURCE_TERM_DEFAULT)
        self.assertEqual(figures.total, 65)

    def test_term_days_preferred_over_school_settings(self):
        self.term.total_school_days = 58
        self.term.save()
        self.school_settings.total_school_days = 65
        figures = resolve_attendance(self.student, self.term, school_settings=self.school_settings)
        self.assertEqual(figures.total, 58)


# ---------------------------------------------------------------------------
# Ranking

def member(student_id, average, arm='Gold', level='JSS 1', campus_id=1):
    return CohortMember(
        student_id=student_id, campus_id=campus_id, session_id=1, term_id=1,
        class_id=f'{level}-{arm}', arm=arm, level=level, average=average,
    )


class RankingTest(SimpleTestCase):
    """Tests for rank computation."""

    def test_dense_rank(self):
        self.assertEqual(dense_rank([90, 90, 85, 80]), [1, 1, 2, 3])

    def test_competition_rank(self):
        self.assertEqual(competition_rank([90, 90, 85, 80]), [1, 1, 3, 4])

    def test_ranks_follow_input_order(self):
        self.assertEqual(dense_rank([60, 85, 82, 85]), [3, 1, 2, 1])

    def test_missing_average_ranks_as_zero(self):
        self.assertEqual(dense_rank([None, 50, 0]), [2, 1, 2])

    def test_default_method_is_dense(self):
        self.assertEqual(rank_values([90, 90, 85]), [1, 1, 2])

    @override_settings(GRADEBOOK_RANKING_METHOD='competition')
    def test_method_from_settings(self):
        self.assertEqual(rank_values([90, 90, 85]), [1, 1, 3])

    def test_unknown_method(self):
        with self.assertRaises(ValueError):
            rank_values([1], method='olympic')

    def test_empty_scope_raises(self):
        with self.assertRaises(EmptyCohortError):
            rank_scope([])

    def test_percentile(self):
        self.assertEqual(percentile(1, 5), Decimal('80.00'))
        self.assertEqual(percentile(4, 6), Decimal('33.33'))
        self.assertIsNone(percentile(None, 5))
        self.assertIsNone(percentile(1, 0))

    def test_standings_per_scope(self):
        members = [
            member(1, Decimal('85')),
            member(2, Decimal('85')),
            member(3, Decimal('82')),
            member(4, Decimal('60')),
            member(5, Decimal('81.5')),
            member(6, Decimal('90'), arm='Blue'),
            member(7, Decimal('95'), level='JSS 2', arm='Gold'),
            member(8, Decimal('99'), campus_id=2),
        ]
        standings = compute_standings(members)

        mine = standings[5]
        self.assertEqual((mine.cohort_rank, mine.cohort_size), (3, 5))
        self.assertEqual((mine.level_rank, mine.level_size), (4, 6))
        self.assertEqual((mine.campus_rank, mine.campus_total), (5, 7))
        self.assertEqual(mine.campus_percentile, Decimal('28.57'))

        self.assertEqual(standings[6].cohort_rank, 1)
        self.assertEqual(standings[6].cohort_size, 1)
        self.assertEqual(standings[8].campus_total, 1)
        self.assertEqual(standings[8].campus_percentile, Decimal('0.00'))

    def test_student_outside_cohort(self):
        self.assertEqual(standing_for(42, compute_standings([member(1, 80)])), EMPTY_STANDING)
        self.assertEqual(compute_standings([]), {})


class CohortLoadingTest(GradebookTestCase):
    """Tests for materializing the ranking population."""

    def test_population_rules(self):
        ranked = self.make_student('Ama', self.gold)
        self.add_entry(ranked, {'EXAM': 75})
        no_report = self.make_student('Kojo', self.gold)
        withdrawn = self.make_student('Efua', self.gold, status=Student.Status.WITHDRAWN)
        self.add_entry(withdrawn, {'EXAM': 99})
        suspended = self.make_student('Fiifi', self.gold, status=Student.Status.SUSPENDED)
        unenrolled = self.make_student('Adwoa')
        self.add_entry(unenrolled, {'EXAM': 88})

        members = {m.student_id: m for m in load_cohort(self.term)}

        self.assertEqual(set(members), {ranked.pk, no_report.pk, suspended.pk, unenrolled.pk})
        self.assertEqual(members[ranked.pk].average, Decimal('75.00'))
        self.assertIsNone(members[no_report.pk].average)
        self.assertEqual(members[unenrolled.pk].arm, 'Gold')
        self.assertEqual(members[ranked.pk].session_id, self.year.pk)
        self.assertEqual(members[ranked.pk].campus_id, self.campus.pk)

    def test_subject_positions_within_cohort(self):
        top = self.make_student('Ama', self.gold)
        second = self.make_student('Kojo', self.gold)
        other_arm = self.make_student('Esi', self.blue)
        self.add_entry(top, {'EXAM': 90})
        self.add_entry(second, {'EXAM': 75})
        self.add_entry(other_arm, {'EXAM': 95}, academic_class=self.blue)

        positions = subject_positions(self.term)
        self.assertEqual(positions[(top.pk, self.maths.pk)], (1, 2))
        self.assertEqual(positions[(second.pk, self.maths.pk)], (2, 2))
        self.assertEqual(positions[(other_arm.pk, self.maths.pk)], (1, 1))

    def test_assign_class_positions(self):
        students = [self.make_student(name, self.gold) for name in ('Ama', 'Kojo', 'Esi')]
        for student, score in zip(students, (70, 90, 70)):
            self.add_entry(student, {'EXAM': score})

        assign_class_positions(self.term)

        positions = dict(
            StudentTermReport.objects.filter(term=self.term).values_list('student_id', 'position_in_class')
        )
        self.assertEqual(positions, {students[0].pk: 2, students[1].pk: 1, students[2].pk: 2})

    def test_assign_class_positions_clears_excluded(self):
        student = self.make_student('Ama', self.gold)
        self.add_entry(student, {'EXAM': 70})
        StudentTermReport.objects.filter(student=student).update(position_in_class=1)
        Student.objects.filter(pk=student.pk).update(status=Student.Status.GRADUATED)

        assign_class_positions(self.term)
        self.assertIsNone(StudentTermReport.objects.get(student=student).position_in_class)


# ---------------------------------------------------------------------------
# Report assembly

class BuildReportTest(GradebookTestCase):
    """End-to-end report card assembly."""

    def setUp(self):
        super().setUp()
        self.homeroom = ClassGroup.objects.create(school=self.school, name='JSS 1 Gold', term=self.term)
        averages = [Decimal('85'), Decimal('85'), Decimal('82'), Decimal('60'), Decimal('81.5')]
        self.students = []
        for i, average in enumerate(averages):
            student = self.make_student(f'Student{i}', self.gold, group=self.homeroom)
            ClassGroupMember.objects.create(group=self.homeroom, student=student)
            self.add_entry(student, {'CA': 30, 'EXAM': str(average - 30)})
            self.students.append(student)
        self.student = self.students[-1]

        blue_student = self.make_student('Blue', self.blue)
        self.add_entry(blue_student, {'EXAM': 90}, academic_class=self.blue)

        member_row = ClassGroupMember.objects.get(group=self.homeroom, student=self.student)
        for day, status in [(2, 'present'), (3, 'present'), (4, 'present'), (5, 'late')]:
            AttendanceRecord.objects.create(member=member_row, session_date=date(2024, 9, day), status=status)

    def test_end_to_end_summary(self):
        payload = build_report(self.student.pk, self.term.pk)
        summary = payload['summary']

        self.assertEqual(summary['average'], 81.5)
        self.assertEqual(summary['positionInArm'], 3)
        self.assertEqual(summary['cohortSize'], 5)
        self.assertEqual(summary['positionInLevel'], 4)
        self.assertEqual(summary['levelSize'], 6)
        self.assertEqual(summary['campusPercentile'], 33.33)
        self.assertEqual(summary['gpaAverage'], 4.0)
        self.assertTrue(summary['rankingSettled'])

    def test_subject_rows(self):
        subjects = build_report(self.student.pk, self.term.pk)['subjects']
        self.assertEqual(len(subjects), 1)
        row = subjects[0]
        self.assertEqual(row['subjectName'], 'Mathematics')
        self.assertEqual(row['totalScore'], 81.5)
        self.assertEqual(row['gradeLabel'], 'A')
        self.assertEqual(row['remark'], 'Excellent')
        self.assertEqual(row['subjectPosition'], 3)
        self.assertEqual(row['subjectCohortSize'], 5)
        self.assertEqual(row['componentScores'], {'CA': 30, 'EXAM': '51.5'})

    def test_attendance_and_context(self):
        payload = build_report(self.student.pk, self.term.pk)
        self.assertEqual(payload['attendance']['source'], 'computed')
        self.assertEqual(payload['attendance']['present'], 3)
        self.assertEqual(payload['attendance']['late'], 1)
        self.assertEqual(payload['attendance']['rate'], 75.0)
        self.assertEqual(payload['student']['arm'], 'Gold')
        self.assertEqual(payload['term']['session'], '2024/2025')
        self.assertEqual(payload['schoolConfig']['activeGradingSchemeId'], str(self.scheme.pk))
        self.assertIsNone(payload['academicGoal'])
        self.assertIsNone(payload['goalAnalysis'])

    def test_goal_and_analysis_pass_through(self):
        AcademicGoal.objects.create(
            student=self.student, term=self.term, goal_text='Top three in class',
            target_average=Decimal('85.00'), target_position=3,
        )
        report = StudentTermReport.objects.get(student=self.student, term=self.term)
        GoalAnalysis.objects.create(
            report=report, analysis_text='Reached the target position.',
            achievement_rating=GoalAnalysis.Rating.MET,
        )
        payload = build_report(self.student.pk, self.term.pk)
        self.assertEqual(payload['academicGoal']['targetPosition'], 3)
        self.assertEqual(payload['academicGoal']['targetAverage'], 85.0)
        self.assertEqual(payload['goalAnalysis']['achievementRating'], 'met')

    def test_pending_recalculation_unsettles_ranking(self):
        RecalculationRun.objects.create(school=self.school, grading_scheme=self.scheme)
        payload = build_report(self.student.pk, self.term.pk)
        self.assertFalse(payload['summary']['rankingSettled'])

    def test_withdrawn_student_has_no_arm_position(self):
        assign_class_positions(self.term)
        report = StudentTermReport.objects.get(student=self.student, term=self.term)
        self.assertEqual(report.position_in_class, 3)
        Student.objects.filter(pk=self.student.pk).update(status=Student.Status.WITHDRAWN)

        summary = build_report(self.student.pk, self.term.pk)['summary']
        self.assertIsNone(summary['positionInArm'])
        self.assertIsNone(summary['cohortSize'])
        self.assertEqual(summary['average'], 81.5)

    def test_report_and_cohort_read_in_one_transaction(self):
        depth = len(connection.savepoint_ids)
        seen = []

        def tracking_load_cohort(term):
            seen.append(len(connection.savepoint_ids))
            return load_cohort(term)

        with mock.patch('gradebook.reports.load_cohort', side_effect=tracking_load_cohort):
            payload = build_report(self.student.pk, self.term.pk)

        self.assertEqual(seen, [depth + 1])
        self.assertEqual(payload['summary']['positionInArm'], 3)

    def test_student_without_results(self):
        newcomer = self.make_student('New')
        payload = build_report(newcomer.pk, self.term.pk)
        self.assertEqual(payload['subjects'], [])
        self.assertIsNone(payload['summary']['positionInArm'])
        self.assertIsNone(payload['summary']['average'])
        self.assertIsNone(payload['summary']['gpaAverage'])
        self.assertEqual(payload['attendance']['total'], 0)

    def test_missing_rows(self):
        with self.assertRaises(Student.DoesNotExist):
            build_report(999999, self.term.pk)
        with self.assertRaises(Term.DoesNotExist):
            build_report(self.student.pk, 999999)


# ---------------------------------------------------------------------------
# Recalculation

class RecalculationTest(GradebookTestCase):
    """Tests for bulk grade recalculation."""

    def test_second_run_is_noop(self):
        for name, score in (('Ama', 85), ('Kojo', 72), ('Esi', 40)):
            self.add_ungraded_entry(self.make_student(name, self.gold), {'EXAM': score})

        first = recalculate_all(self.scheme.pk)
        second = recalculate_all(self.scheme.pk)

        self.assertEqual(first.updated_count, 3)
        self.assertEqual(second.updated_count, 0)
        self.assertEqual(first.failures, [])
        self.assertEqual(
            set(ScoreEntry.objects.values_list('grade_label', flat=True)), {'A', 'B', 'C'}
        )

    def test_rule_change_updates_affected_entries(self):
        self.add_entry(self.make_student('Ama', self.gold), {'EXAM': 85})
        self.add_entry(self.make_student('Kojo', self.gold), {'EXAM': 72})
        self.scheme.rules.filter(grade_label='A').update(remark='Outstanding')

        result = recalculate_all(self.scheme.pk)

        self.assertEqual(result.updated_count, 1)
        self.assertTrue(ScoreEntry.objects.filter(grade_remark='Outstanding').exists())

    def test_failures_do_not_abort_batch(self):
        good = self.add_ungraded_entry(self.make_student('Ama', self.gold), {'EXAM': 85})
        bad = self.add_ungraded_entry(self.make_student('Kojo', self.gold), {'EXAM': '79.5'})
        also_good = self.add_ungraded_entry(self.make_student('Esi', self.gold), {'EXAM': 60})

        with self.assertLogs('gradebook.recalculation', level='ERROR'):
            result = recalculate_all(self.scheme.pk)

        self.assertEqual(result.updated_count, 2)
        self.assertEqual(len(result.failures), 1)
        self.assertEqual(result.failures[0]['entry_id'], str(bad.pk))
        self.assertIn('79.5', result.failures[0]['reason'])
        self.assertEqual(result.run.status, RecalculationRun.Status.COMPLETED)

        good.refresh_from_db()
        also_good.refresh_from_db()
        bad.refresh_from_db()
        self.assertEqual((good.grade_label, also_good.grade_label), ('A', 'C'))
        self.assertEqual(bad.grade_label, '')

    def test_unusable_scores_do_not_abort_batch(self):
        good = self.add_ungraded_entry(self.make_student('Ama', self.gold), {'EXAM': 85})
        bad = [
            self.add_ungraded_entry(self.make_student(name, self.gold), {'EXAM': score})
            for name, score in (('Kojo', '1e30'), ('Yaw', 'NaN'), ('Akua', 'Infinity'))
        ]
        also_good = self.add_ungraded_entry(self.make_student('Esi', self.gold), {'EXAM': 60})

        with self.assertLogs('gradebook.recalculation', level='ERROR'):
            result = recalculate_all(self.scheme.pk)

        self.assertEqual(result.updated_count, 2)
        self.assertEqual(
            {f['entry_id'] for f in result.failures}, {str(entry.pk) for entry in bad}
        )
        self.assertEqual(result.run.status, RecalculationRun.Status.COMPLETED)
        result.run.refresh_from_db()
        self.assertEqual(len(result.run.failures), 3)

        good.refresh_from_db()
        also_good.refresh_from_db()
        self.assertEqual((good.grade_label, also_good.grade_label), ('A', 'C'))
        self.assertFalse(ScoreEntry.objects.filter(pk__in=[e.pk for e in bad]).exclude(grade_label='').exists())

    def test_scope_follows_activation_from_another_process(self):
        other = GradingScheme.objects.create(school=self.school, name='Cambridge')
        GradingSchemeRule.objects.create(scheme=other, grade_label='P', min_score=0, max_score=100)
        # Warm this process's cache, then activate without going through save()
        SchoolSettings.load(self.school)
        SchoolSettings.objects.filter(school=self.school).update(active_grading_scheme=other)
        entry = self.add_ungraded_entry(self.make_student('Ama', self.gold), {'EXAM': 85})

        result = recalculate_all(other.pk)

        self.assertEqual(result.updated_count, 1)
        entry.refresh_from_db()
        self.assertEqual(entry.grade_label, 'P')

    def test_classes_pinned_to_other_scheme_skipped(self):
        other = GradingScheme.objects.create(school=self.school, name='Cambridge')
        self.blue.grading_scheme = other
        self.blue.save()
        pinned = self.add_ungraded_entry(self.make_student('Ama', self.blue), {'EXAM': 85}, academic_class=self.blue)

        result = recalculate_all(self.scheme.pk)

        self.assertEqual(result.updated_count, 0)
        pinned.refresh_from_db()
        self.assertEqual(pinned.grade_label, '')

    def test_inactive_scheme_only_reaches_pinned_classes(self):
        other = GradingScheme.objects.create(school=self.school, name='Cambridge')
        GradingSchemeRule.objects.create(scheme=other, grade_label='P', min_score=0, max_score=100)
        self.blue.grading_scheme = other
        self.blue.save()
        self.add_ungraded_entry(self.make_student('Ama', self.gold), {'EXAM': 85})
        pinned = self.add_ungraded_entry(self.make_student('Kojo', self.blue), {'EXAM': 85}, academic_class=self.blue)

        result = recalculate_all(other.pk)

        self.assertEqual(result.updated_count, 1)
        pinned.refresh_from_db()
        self.assertEqual(pinned.grade_label, 'P')

    def test_term_filter(self):
        second_term = Term.objects.create(academic_year=self.year, name='Second Term', term_number=2)
        self.add_ungraded_entry(self.make_student('Ama', self.gold), {'EXAM': 85})
        ScoreEntry.objects.create(
            school=self.school, student=self.make_student('Kojo'), term=second_term,
            academic_class=self.gold, subject=self.maths, component_scores={'EXAM': 70},
        )

        result = recalculate_all(self.scheme.pk, term_id=second_term.pk)

        self.assertEqual(result.updated_count, 1)
        self.assertEqual(result.run.term, second_term)

    def test_reports_and_positions_refreshed(self):
        low = self.make_student('Ama', self.gold)
        high = self.make_student('Kojo', self.gold)
        self.add_ungraded_entry(low, {'EXAM': 60})
        self.add_ungraded_entry(high, {'EXAM': 85})

        recalculate_all(self.scheme.pk)

        reports = {r.student_id: r for r in StudentTermReport.objects.filter(term=self.term)}
        self.assertEqual(reports[high.pk].average_score, Decimal('85.00'))
        self.assertEqual(reports[high.pk].position_in_class, 1)
        self.assertEqual(reports[low.pk].position_in_class, 2)

    def test_settlement(self):
        second_term = Term.objects.create(academic_year=self.year, name='Second Term', term_number=2)
        self.assertTrue(recalculation_settled(self.school, self.term))

        run = RecalculationRun.objects.create(school=self.school, grading_scheme=self.scheme, term=second_term)
        self.assertTrue(recalculation_settled(self.school, self.term))
        self.assertFalse(recalculation_settled(self.school, second_term))
        self.assertFalse(recalculation_settled(self.school))

        run.status = RecalculationRun.Status.COMPLETED
        run.save()
        self.assertTrue(recalculation_settled(self.school, second_term))


class RecalculationTaskTest(GradebookTestCase):
    """Tests for the background recalculation task."""

    def test_task_completes_run(self):
        self.add_ungraded_entry(self.make_student('Ama', self.gold), {'EXAM': 85})
        run = RecalculationRun.objects.create(school=self.school, grading_scheme=self.scheme)

        result = recalculate_grades_task(str(run.pk))

        run.refresh_from_db()
        self.assertTrue(result['success'])
        self.assertEqual(result['updated_count'], 1)
        self.assertEqual(run.status, RecalculationRun.Status.COMPLETED)
        self.assertIsNotNone(run.finished_at)

    def test_missing_run(self):
        with self.assertLogs('gradebook.tasks', level='ERROR'):
            result = recalculate_grades_task('00000000-0000-0000-0000-000000000000')
        self.assertFalse(result['success'])

    def test_settled_run_not_repeated(self):
        run = RecalculationRun.objects.create(
            school=self.school, grading_scheme=self.scheme, status=RecalculationRun.Status.COMPLETED
        )
        with mock.patch('gradebook.recalculation.recalculate_all') as recalc:
            result = recalculate_grades_task(str(run.pk))
        self.assertFalse(result['success'])
        recalc.assert_not_called()


# ---------------------------------------------------------------------------
# Views

class ReportViewTest(GradebookTestCase):
    """Tests for the report card endpoint."""

    def setUp(self):
        super().setUp()
        self.user = User.objects.create_user(username='teacher', password='testpass123')
        self.student = self.make_student('Ama', self.gold)
        self.add_entry(self.student, {'EXAM': 85})

    def url(self, student_id, term_id):
        return reverse('gradebook:student_term_report', args=[student_id, term_id])

    def test_requires_login(self):
        response = self.client.get(self.url(self.student.pk, self.term.pk))
        self.assertEqual(response.status_code, 302)

    def test_returns_report(self):
        self.client.force_login(self.user)
        response = self.client.get(self.url(self.student.pk, self.term.pk))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['summary']['positionInArm'], 1)
        self.assertEqual(data['subjects'][0]['gradeLabel'], 'A')

    def test_missing_student_and_term(self):
        self.client.force_login(self.user)
        self.assertEqual(self.client.get(self.url(999999, self.term.pk)).status_code, 404)
        response = self.client.get(self.url(self.student.pk, 999999))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'Term not found')


class RecalculateViewTest(GradebookTestCase):
    """Tests for the recalculation endpoints."""

    def setUp(self):
        super().setUp()
        self.admin = User.objects.create_user(username='admin', password='testpass123', is_staff=True)
        self.teacher = User.objects.create_user(username='teacher', password='testpass123')
        self.entry = self.add_ungraded_entry(self.make_student('Ama', self.gold), {'EXAM': 85})
        self.url = reverse('gradebook:recalculate_all_grades', args=[self.scheme.pk])

    def test_admin_only(self):
        self.client.force_login(self.teacher)
        self.assertEqual(self.client.post(self.url).status_code, 403)

    def test_post_required(self):
        self.client.force_login(self.admin)
        self.assertEqual(self.client.get(self.url).status_code, 405)

    def test_synchronous_run(self):
        self.client.force_login(self.admin)
        response = self.client.post(self.url, {'term_id': self.term.pk})
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['updated_count'], 1)
        self.assertEqual(data['failures'], [])
        self.assertEqual(data['status'], 'completed')

        status = self.client.get(reverse('gradebook:recalculation_run_status', args=[data['run_id']]))
        self.assertEqual(status.json()['settled'], True)

    def test_json_body(self):
        self.client.force_login(self.admin)
        response = self.client.post(
            self.url, data=json.dumps({'term_id': self.term.pk}), content_type='application/json'
        )
        self.assertEqual(response.json()['updated_count'], 1)

    def test_async_run_is_queued(self):
        self.client.force_login(self.admin)
        with mock.patch.object(recalculate_grades_task, 'delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                response = self.client.post(self.url, {'async': '1'})
        self.assertEqual(response.status_code, 202)
        run_id = response.json()['run_id']
        delay.assert_called_once_with(run_id)
        self.assertEqual(RecalculationRun.objects.get(pk=run_id).status, RecalculationRun.Status.PENDING)

    def test_invalid_input(self):
        self.client.force_login(self.admin)
        self.assertEqual(self.client.post(self.url, {'term_id': 'first'}).status_code, 400)
        self.assertEqual(self.client.post(self.url, {'term_id': 999999}).status_code, 404)
        bad_json = self.client.post(self.url, data='{not json', content_type='application/json')
        self.assertEqual(bad_json.status_code, 400)

    def test_unknown_scheme(self):
        self.client.force_login(self.admin)
        url = reverse('gradebook:recalculate_all_grades', args=['00000000-0000-0000-0000-000000000000'])
        self.assertEqual(self.client.post(url).status_code, 404)

    def test_unknown_run(self):
        self.client.force_login(self.admin)
        url = reverse('gradebook:recalculation_run_status', args=['00000000-0000-0000-0000-000000000000'])
        self.assertEqual(self.client.get(url).status_code, 404)


# ---------------------------------------------------------------------------
# Management commands

class CommandsTest(GradebookTestCase):
    """Tests for gradebook management commands."""

    def test_seed_grading_scheme(self):
        out = StringIO()
        call_command('seed_grading_scheme', school='ups', activate=True, stdout=out)

        scheme = GradingScheme.objects.get(school=self.school, name='Standard A-F')
        self.assertEqual(scheme.rules.count(), 6)
        self.assertEqual(scheme.validate_coverage(), [])
        self.assertEqual(SchoolSettings.load(self.school).active_grading_scheme, scheme)
        self.assertIn('Rules cover every score', out.getvalue())

    def test_seed_is_idempotent_without_force(self):
        call_command('seed_grading_scheme', school='ups', stdout=StringIO())
        out = StringIO()
        call_command('seed_grading_scheme', school='ups', stdout=out)
        self.assertIn('already exists', out.getvalue())
        self.assertEqual(GradingScheme.objects.get(name='Standard A-F').rules.count(), 6)

    def test_seed_unknown_school(self):
        with self.assertRaises(CommandError):
            call_command('seed_grading_scheme', school='nowhere', stdout=StringIO())

    def test_recalculate_grades(self):
        self.add_ungraded_entry(self.make_student('Ama', self.gold), {'EXAM': 85})
        out = StringIO()
        call_command('recalculate_grades', scheme=str(self.scheme.pk), stdout=out)
        self.assertIn('1 updated, 0 failed', out.getvalue())

    def test_recalculate_unknown_scheme(self):
        with self.assertRaises(CommandError):
            call_command('recalculate_grades', scheme='not-a-uuid', stdout=StringIO())
