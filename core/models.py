from django.db import models
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator


def default_term_weights():
    return {'term1': 10, 'term2': 10, 'term3': 80}


class School(models.Model):
    """
    A school (tenant). Every school-owned row is scoped through this model.
    """
    name = models.CharField(max_length=150)
    code = models.SlugField(
        max_length=50,
        unique=True,
        help_text="Short unique code, e.g. upss"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Campus(models.Model):
    school = models.ForeignKey(School, on_delete=models.CASCADE, related_name='campuses')
    name = models.CharField(max_length=100)

    class Meta:
        ordering = ['school', 'name']
        verbose_name_plural = "Campuses"
        unique_together = ['school', 'name']

    def __str__(self):
        return self.name


class AcademicYear(models.Model):
    """
    Represents an academic session (e.g., 2024/2025).
    The name doubles as the session label on report cards.
    """
    school = models.ForeignKey(School, on_delete=models.CASCADE, related_name='academic_years')
    name = models.CharField(
        max_length=50,
        help_text="e.g., 2024/2025"
    )
    start_date = models.DateField()
    end_date = models.DateField()
    is_current = models.BooleanField(
        default=False,
        help_text="Only one academic year can be current per school"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-start_date']
        verbose_name = "Academic Year"
        verbose_name_plural = "Academic Years"

    def __str__(self):
        return self.name

    def clean(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValidationError('End date must be after start date')

    def save(self, *args, **kwargs):
        # Ensure only one academic year is current
        if self.is_current:
            AcademicYear.objects.filter(
                school_id=self.school_id, is_current=True
            ).exclude(pk=self.pk).update(is_current=False)
        super().save(*args, **kwargs)

    @classmethod
    def get_current(cls, school):
        """Get the current academic year for a school."""
        return cls.objects.filter(school=school, is_current=True).first()


class Term(models.Model):
    """
    Represents a term within an academic year.
    """
    PERIOD_NUMBER_CHOICES = [
        (1, 'First'),
        (2, 'Second'),
        (3, 'Third'),
    ]

    academic_year = models.ForeignKey(
        AcademicYear,
        on_delete=models.CASCADE,
        related_name='terms'
    )
    name = models.CharField(
        max_length=50,
        help_text="e.g., First Term"
    )
    term_number = models.PositiveSmallIntegerField(
        choices=PERIOD_NUMBER_CHOICES,
        default=1,
    )
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    is_current = models.BooleanField(
        default=False,
        help_text="Only one term can be current per school"
    )
    total_school_days = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="School-wide number of school days, used when daily attendance is missing"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['academic_year', 'term_number']
        unique_together = ['academic_year', 'term_number']

    def __str__(self):
        return f"{self.name} - {self.academic_year.name}"

    def save(self, *args, **kwargs):
        # Ensure only one term is current
        if self.is_current:
            Term.objects.filter(
                academic_year__school_id=self.academic_year.school_id,
                is_current=True
            ).exclude(pk=self.pk).update(is_current=False)
        super().save(*args, **kwargs)

    @property
    def school(self):
        return self.academic_year.school

    @property
    def session_label(self):
        return self.academic_year.name

    @classmethod
    def get_current(cls, school):
        """Get the current term for a school."""
        return cls.objects.filter(
            academic_year__school=school, is_current=True
        ).select_related('academic_year').first()


class SchoolSettings(models.Model):
    """
    Stores configuration specific to one School.
    """
    school = models.OneToOneField(School, on_delete=models.CASCADE, related_name='settings')
    display_name = models.CharField(max_length=150, blank=True)
    motto = models.CharField(max_length=200, blank=True)
    address = models.TextField(blank=True)

    active_grading_scheme = models.ForeignKey(
        'gradebook.GradingScheme',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        help_text="Scheme applied to classes that do not pin their own"
    )
    term_weights = models.JSONField(default=default_term_weights, blank=True)
    total_school_days = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        help_text="Fallback day count for terms that do not set their own"
    )

    class Meta:
        verbose_name = "School Settings"
        verbose_name_plural = "School Settings"

    def __str__(self):
        return f"Settings for {self.school}"

    @staticmethod
    def cache_key(school_id):
        return f'school_settings_{school_id}'

    def save(self, *args, **kwargs):
        super().save(*args, **kwargs)
        cache.delete(self.cache_key(self.school_id))

    @classmethod
    def load(cls, school):
        from gradebook import config

        key = cls.cache_key(school.pk)
        profile = cache.get(key)
        if profile is None:
            profile, created = cls.objects.get_or_create(
                school=school,
                defaults={'display_name': school.name}
            )
            cache.set(key, profile, config.SCHOOL_SETTINGS_CACHE_TIMEOUT)
        return profile

    def as_snapshot(self):
        """Config fields copied onto a report payload."""
        return {
            'displayName': self.display_name or self.school.name,
            'motto': self.motto,
            'address': self.address,
            'activeGradingSchemeId': str(self.active_grading_scheme_id) if self.active_grading_scheme_id else None,
            'termWeights': self.term_weights,
            'totalSchoolDays': self.total_school_days,
        }
