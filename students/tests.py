from django.test import TestCase

from core.models import School
from .models import Student


class StudentModelTest(TestCase):
    """Tests for Student model."""

    def setUp(self):
        self.school = School.objects.create(name='Unity Park School', code='ups')
        self.student = Student.objects.create(
            school=self.school,
            first_name='Kwame',
            other_names='Nana',
            last_name='Asante',
            admission_number='STU001',
        )

    def test_full_name(self):
        """Test full_name property."""
        self.assertEqual(self.student.full_name, 'Kwame Nana Asante')

    def test_default_status(self):
        self.assertEqual(self.student.status, Student.Status.ACTIVE)

    def test_str_representation(self):
        self.assertEqual(str(self.student), 'Kwame Nana Asante (STU001)')
