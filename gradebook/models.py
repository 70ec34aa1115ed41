import uuid
from decimal import Decimal

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.core.exceptions import ValidationError

from academics.models import AcademicClass, Subject
from students.models import Student
from core.models import School, Term


class GradingScheme(models.Model):
    """A named set of score bands (e.g., WAEC, Cambridge, or a custom scheme)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    school = models.ForeignKey(School, on_delete=models.CASCADE, related_name='grading_schemes')
    name = models.CharField(
        max_length=100,
        help_text='Name of the grading scheme (e.g., WAEC, Custom)'
    )
    gpa_max = models.DecimalField(
        max_digits=4,
        decimal_places=2,
        null=True,
        blank=True,
        help_text='Top of the GPA scale, if the scheme carries GPA values'
    )
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'grading_scheme'
        ordering = ['school', 'name']
        unique_together = ['school', 'name']

    def __str__(self):
        return self.name

    def validate_coverage(self, lower=Decimal('0'), upper=Decimal('100')):
        """Return the score intervals in [lower, upper] no rule covers."""
        from .grading import find_coverage_gaps
        return find_coverage_gaps(list(self.rules.all()), lower=lower, upper=upper)


class BaseGradeBand(models.Model):
    """Inclusive score band mapped to a grade label."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    min_score = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text='Lowest score for this grade (inclusive)'
    )
    max_score = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text='Highest score for this grade (inclusive)'
    )
    grade_label = models.CharField(max_length=10, help_text='Grade label (e.g., A1, B2)')
    gpa_value = models.DecimalField(max_digits=4, decimal_places=2, null=True, blank=True)
    remark = models.CharField(max_length=50, blank=True, help_text='e.g., Excellent')

    class Meta:
        abstract = True

    def __str__(self):
        return f"{self.grade_label} ({self.min_score}-{self.max_score})"

    def sibling_bands(self):
        raise NotImplementedError

    def clean(self):
        """Validate that min <= max and ranges don't overlap"""
        if self.min_score is None or self.max_score is None:
            return
        if self.min_score > self.max_score:
            raise ValidationError('Minimum score cannot be greater than maximum score')

        overlapping = self.sibling_bands().exclude(pk=self.pk).filter(
            min_score__lte=self.max_score,
            max_score__gte=self.min_score,
        )
        if overlapping.exists():
            raise ValidationError(
                f'Grade range overlaps with existing grade: {overlapping.first()}'
            )


class GradingSchemeRule(BaseGradeBand):
    scheme = models.ForeignKey(GradingScheme, on_delete=models.CASCADE, related_name='rules')

    class Meta:
        db_table = 'grading_scheme_rule'
        ordering = ['scheme', 'min_score']
        indexes = [
            models.Index(fields=['scheme', 'min_score', 'max_score'], name='scheme_rule_band_idx'),
        ]

    def sibling_bands(self):
        return GradingSchemeRule.objects.filter(scheme_id=self.scheme_id)


class SubjectGradingRule(BaseGradeBand):
    """A band that applies to one subject only, ahead of the scheme's own rules."""
    scheme = models.ForeignKey(GradingScheme, on_delete=models.CASCADE, related_name='subject_rules')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='grading_rules')

    class Meta:
        db_table = 'subject_grading_rule'
        ordering = ['scheme', 'subject', 'min_score']

    def __str__(self):
        return f"{self.subject}: {super().__str__()}"

    def sibling_bands(self):
        return SubjectGradingRule.objects.filter(scheme_id=self.scheme_id, subject_id=self.subject_id)


class ScoreEntry(models.Model):
    """
    One student's result in one subject for a term.
    Component scores are entered by teachers; total and grade are derived.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    school = models.ForeignKey(School, on_delete=models.CASCADE, related_name='score_entries')
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='score_entries')
    term = models.ForeignKey(Term, on_delete=models.CASCADE, related_name='score_entries')
    academic_class = models.ForeignKey(AcademicClass, on_delete=models.CASCADE, related_name='score_entries')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='score_entries')

    component_scores = models.JSONField(
        default=dict,
        blank=True,
        help_text='Component name to score, e.g. {"CA1": 15, "EXAM": 60}'
    )

    # Derived
    total_score = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    grade_label = models.CharField(max_length=10, blank=True)
    gpa_value = models.DecimalField(max_digits=4, decimal_places=2, null=True, blank=True)
    grade_remark = models.CharField(max_length=50, blank=True)

    teacher_comment = models.CharField(max_length=200, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'score_entry'
        ordering = ['term', 'subject', '-total_score']
        verbose_name_plural = 'Score Entries'
        unique_together = ['term', 'academic_class', 'subject', 'student']
        indexes = [
            models.Index(fields=['student', 'term'], name='score_entry_student_term_idx'),
            models.Index(fields=['term', 'academic_class', 'subject'], name='score_entry_class_subject_idx'),
        ]

    def __str__(self):
        return f"{self.student} - {self.subject.name} ({self.term}): {self.total_score}"


class StudentTermReport(models.Model):
    """
    Overall term report for a student (report card summary).
    Averages are kept in sync with the student's ScoreEntries.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='term_reports')
    term = models.ForeignKey(Term, on_delete=models.CASCADE, related_name='term_reports')
    academic_class = models.ForeignKey(
        AcademicClass,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='term_reports'
    )

    total_score = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    average_score = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    subjects_count = models.PositiveSmallIntegerField(default=0)
    position_in_class = models.PositiveSmallIntegerField(null=True, blank=True)

    teacher_comment = models.TextField(blank=True)
    principal_comment = models.TextField(blank=True)
    is_published = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'student_term_report'
        ordering = ['term', 'position_in_class']
        unique_together = ['student', 'term']
        indexes = [
            models.Index(fields=['term', 'average_score'], name='term_report_average_idx'),
        ]

    def __str__(self):
        return f"{self.student} - {self.term}: average {self.average_score}"


class AcademicGoal(models.Model):
    """A target a student sets for a term."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='academic_goals')
    term = models.ForeignKey(Term, on_delete=models.CASCADE, related_name='academic_goals')
    goal_text = models.TextField()
    target_average = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    target_position = models.PositiveSmallIntegerField(null=True, blank=True)
    target_subjects = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'academic_goal'
        unique_together = ['student', 'term']

    def __str__(self):
        return f"{self.student} - {self.term}: {self.goal_text[:40]}"

    def as_payload(self):
        return {
            'goalText': self.goal_text,
            'targetAverage': float(self.target_average) if self.target_average is not None else None,
            'targetPosition': self.target_position,
            'targetSubjects': self.target_subjects,
        }


class GoalAnalysis(models.Model):
    """Narrative analysis of how a student did against their goal."""
    class Rating(models.TextChoices):
        EXCEEDED = 'exceeded', 'Exceeded'
        MET = 'met', 'Met'
        PARTIALLY_MET = 'partially_met', 'Partially Met'
        NOT_MET = 'not_met', 'Not Met'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    report = models.OneToOneField(StudentTermReport, on_delete=models.CASCADE, related_name='goal_analysis')
    analysis_text = models.TextField()
    achievement_rating = models.CharField(max_length=20, choices=Rating.choices, blank=True)
    generated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'goal_analysis'
        verbose_name_plural = 'Goal Analyses'

    def __str__(self):
        return f"Goal analysis for {self.report}"

    def as_payload(self):
        return {
            'analysis': self.analysis_text,
            'achievementRating': self.achievement_rating or None,
            'generatedAt': self.generated_at.isoformat() if self.generated_at else None,
        }


class RecalculationRun(models.Model):
    """
    Book-keeping for one bulk grade recalculation.
    Ranking views are only trusted once every run covering the term has settled.
    """
    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        RUNNING = 'running', 'Running'
        COMPLETED = 'completed', 'Completed'
        FAILED = 'failed', 'Failed'

    UNSETTLED = (Status.PENDING, Status.RUNNING)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    school = models.ForeignKey(School, on_delete=models.CASCADE, related_name='recalculation_runs')
    grading_scheme = models.ForeignKey(GradingScheme, on_delete=models.CASCADE, related_name='recalculation_runs')
    term = models.ForeignKey(
        Term,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='recalculation_runs',
        help_text='Blank means every term'
    )
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    updated_count = models.PositiveIntegerField(default=0)
    failures = models.JSONField(default=list, blank=True)
    error = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    started_at = models.DateTimeField(null=True, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'recalculation_run'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['school', 'status'], name='recalc_run_school_status_idx'),
        ]

    def __str__(self):
        scope = self.term or 'all terms'
        return f"Recalculate {self.grading_scheme} ({scope}): {self.get_status_display()}"

    @property
    def is_settled(self):
        return self.status not in self.UNSETTLED

    def as_payload(self):
        return {
            'run_id': str(self.pk),
            'status': self.status,
            'settled': self.is_settled,
            'updated_count': self.updated_count,
            'failures': self.failures,
            'error': self.error or None,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
        }
