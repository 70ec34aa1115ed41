from django.db import models
from django.utils.translation import gettext_lazy as _
from django.core.validators import MinValueValidator

from gradebook.exceptions import InvalidOverrideError


class Subject(models.Model):
    """
    Represents a subject taught at the school.
    Subjects can be core (mandatory) or elective.
    """
    school = models.ForeignKey('core.School', on_delete=models.CASCADE, related_name='subjects')
    name = models.CharField(
        max_length=100,
        help_text="e.g., Mathematics, English Language"
    )
    short_name = models.CharField(max_length=20, blank=True)
    is_core = models.BooleanField(
        default=True,
        help_text="Core subjects are mandatory"
    )

    class Meta:
        ordering = ['-is_core', 'name']
        unique_together = ['school', 'name']

    def __str__(self):
        return self.name


class AcademicClass(models.Model):
    """
    A class level subdivided into arms, e.g. JSS 1 Gold.
    Students of the same class and arm form a ranking cohort.
    """
    school = models.ForeignKey('core.School', on_delete=models.CASCADE, related_name='classes')
    campus = models.ForeignKey(
        'core.Campus',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='classes'
    )
    name = models.CharField(max_length=50, help_text="e.g., JSS 1 Gold")
    level = models.CharField(max_length=30, help_text="e.g., JSS 1")
    arm = models.CharField(max_length=30, blank=True, help_text="e.g., Gold")

    grading_scheme = models.ForeignKey(
        'gradebook.GradingScheme',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='classes',
        help_text="Overrides the school's active grading scheme for this class"
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['level', 'arm']
        verbose_name = "Class"
        verbose_name_plural = "Classes"
        unique_together = ['school', 'level', 'arm']

    def __str__(self):
        return self.name


class ClassGroup(models.Model):
    """
    A group of students that attendance is taken for.
    Class-teacher groups mirror an arm; subject and club groups cut across arms.
    """
    class GroupType(models.TextChoices):
        CLASS_TEACHER = 'class_teacher', _('Class Teacher')
        SUBJECT = 'subject', _('Subject')
        CLUB = 'club', _('Club')

    school = models.ForeignKey('core.School', on_delete=models.CASCADE, related_name='class_groups')
    name = models.CharField(max_length=100)
    group_type = models.CharField(
        max_length=20,
        choices=GroupType.choices,
        default=GroupType.CLASS_TEACHER
    )
    term = models.ForeignKey(
        'core.Term',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='class_groups',
        help_text="Leave blank for groups that persist across terms"
    )

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class ClassGroupMember(models.Model):
    group = models.ForeignKey(ClassGroup, on_delete=models.CASCADE, related_name='members')
    student = models.ForeignKey(
        'students.Student',
        on_delete=models.CASCADE,
        related_name='group_memberships'
    )

    class Meta:
        unique_together = ['group', 'student']

    def __str__(self):
        return f"{self.student} in {self.group}"


class ClassEnrollment(models.Model):
    """
    Places a student in a class (and optionally a class group) for one term.
    """
    student = models.ForeignKey(
        'students.Student',
        on_delete=models.CASCADE,
        related_name='class_enrollments'
    )
    term = models.ForeignKey('core.Term', on_delete=models.CASCADE, related_name='class_enrollments')
    academic_class = models.ForeignKey(
        AcademicClass,
        on_delete=models.CASCADE,
        related_name='enrollments'
    )
    class_group = models.ForeignKey(
        ClassGroup,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='enrollments'
    )

    class Meta:
        unique_together = ['student', 'term']
        indexes = [
            models.Index(fields=['term', 'academic_class'], name='enrollment_term_class_idx'),
        ]

    def __str__(self):
        return f"{self.student} - {self.academic_class} ({self.term})"


class AttendanceRecord(models.Model):
    """One register mark for a group member on one day. Append-only."""
    class Status(models.TextChoices):
        PRESENT = 'present', 'Present'
        ABSENT = 'absent', 'Absent'
        LATE = 'late', 'Late'
        EXCUSED = 'excused', 'Excused'
        UNEXCUSED = 'unexcused', 'Unexcused'

    member = models.ForeignKey(ClassGroupMember, on_delete=models.CASCADE, related_name='attendance_records')
    session_date = models.DateField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PRESENT)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-session_date']
        indexes = [
            models.Index(fields=['member', 'session_date'], name='attendance_member_date_idx'),
        ]

    def __str__(self):
        return f"{self.member.student} - {self.session_date}: {self.status}"


class AttendanceOverride(models.Model):
    """
    Manually entered attendance totals for a student in a group for a term.
    Supersedes attendance computed from daily records.
    """
    student = models.ForeignKey(
        'students.Student',
        on_delete=models.CASCADE,
        related_name='attendance_overrides'
    )
    group = models.ForeignKey(ClassGroup, on_delete=models.CASCADE, related_name='attendance_overrides')
    term = models.ForeignKey('core.Term', on_delete=models.CASCADE, related_name='attendance_overrides')
    total_days = models.PositiveIntegerField(default=0, validators=[MinValueValidator(0)])
    days_present = models.PositiveIntegerField(default=0, validators=[MinValueValidator(0)])
    comment = models.TextField(blank=True)
    updated_by = models.CharField(max_length=150, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ['student', 'group', 'term']
        indexes = [
            models.Index(fields=['term', 'group'], name='override_term_group_idx'),
        ]

    def __str__(self):
        return f"{self.student} - {self.term}: {self.days_present}/{self.total_days}"

    def clean(self):
        """Days present can never exceed the days on record."""
        if self.days_present > self.total_days:
            raise InvalidOverrideError(
                f'Days present ({self.days_present}) cannot exceed total days ({self.total_days})'
            )
