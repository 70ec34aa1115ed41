from datetime import date

from django.core.exceptions import ValidationError
from django.test import TestCase

from core.models import AcademicYear, School, Term
from gradebook.exceptions import InvalidOverrideError
from students.models import Student
from .models import AttendanceOverride, ClassGroup


class AttendanceOverrideModelTest(TestCase):
    """Tests for AttendanceOverride validation."""

    def setUp(self):
        self.school = School.objects.create(name='Unity Park School', code='ups')
        year = AcademicYear.objects.create(
            school=self.school, name='2024/2025',
            start_date=date(2024, 9, 1), end_date=date(2025, 7, 31),
        )
        self.term = Term.objects.create(academic_year=year, name='First Term', term_number=1)
        self.group = ClassGroup.objects.create(school=self.school, name='JSS 1 Gold', term=self.term)
        self.student = Student.objects.create(
            school=self.school, first_name='Ama', last_name='Owusu', admission_number='STU001'
        )

    def make_override(self, total_days, days_present):
        return AttendanceOverride(
            student=self.student, group=self.group, term=self.term,
            total_days=total_days, days_present=days_present,
        )

    def test_present_above_total_rejected(self):
        with self.assertRaises(InvalidOverrideError):
            self.make_override(60, 61).clean()

    def test_full_clean_surfaces_error(self):
        with self.assertRaises(ValidationError) as ctx:
            self.make_override(60, 61).full_clean()
        self.assertIn('cannot exceed', str(ctx.exception))

    def test_valid_override(self):
        override = self.make_override(60, 60)
        override.full_clean()
        override.save()
        self.assertEqual(str(override), f'{self.student} - {self.term}: 60/60')
