from django.db import models
from django.utils.translation import gettext_lazy as _


class Student(models.Model):
    """
    Represents a student enrolled in the school.
    """
    class Gender(models.TextChoices):
        MALE = 'M', _('Male')
        FEMALE = 'F', _('Female')

    class Status(models.TextChoices):
        ACTIVE = 'Active', _('Active')
        SUSPENDED = 'Suspended', _('Suspended')
        WITHDRAWN = 'Withdrawn', _('Withdrawn')
        GRADUATED = 'Graduated', _('Graduated')
        EXPELLED = 'Expelled', _('Expelled')
        INACTIVE = 'Inactive', _('Inactive')

    school = models.ForeignKey('core.School', on_delete=models.CASCADE, related_name='students')
    campus = models.ForeignKey(
        'core.Campus',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='students'
    )

    # Personal Information
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    other_names = models.CharField(max_length=100, blank=True)
    gender = models.CharField(max_length=1, choices=Gender.choices, blank=True)

    admission_number = models.CharField(
        max_length=50,
        help_text="Unique student ID/admission number"
    )

    # Status
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['last_name', 'first_name']
        unique_together = ['school', 'admission_number']
        indexes = [
            models.Index(fields=['school', 'status'], name='student_school_status_idx'),
        ]

    def __str__(self):
        return f"{self.full_name} ({self.admission_number})"

    @property
    def full_name(self):
        """Return full name of student."""
        names = [self.first_name]
        if self.other_names:
            names.append(self.other_names)
        names.append(self.last_name)
        return ' '.join(names)
