from datetime import date

from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import TestCase, Client

from .models import AcademicYear, School, SchoolSettings, Term


class AcademicYearModelTest(TestCase):
    """Tests for AcademicYear model."""

    def setUp(self):
        self.school = School.objects.create(name='Unity Park School', code='ups')

    def make_year(self, name, start_year, is_current=False, school=None):
        return AcademicYear.objects.create(
            school=school or self.school,
            name=name,
            start_date=date(start_year, 9, 1),
            end_date=date(start_year + 1, 7, 31),
            is_current=is_current,
        )

    def test_only_one_current_year_per_school(self):
        """Marking a year current clears the flag on the others."""
        old = self.make_year('2023/2024', 2023, is_current=True)
        new = self.make_year('2024/2025', 2024, is_current=True)
        old.refresh_from_db()
        self.assertFalse(old.is_current)
        self.assertEqual(AcademicYear.get_current(self.school), new)

    def test_current_flag_scoped_to_school(self):
        other_school = School.objects.create(name='Hilltop Academy', code='hta')
        mine = self.make_year('2024/2025', 2024, is_current=True)
        self.make_year('2024/2025', 2024, is_current=True, school=other_school)
        mine.refresh_from_db()
        self.assertTrue(mine.is_current)

    def test_end_date_must_follow_start(self):
        year = AcademicYear(school=self.school, name='Bad', start_date=date(2024, 9, 1), end_date=date(2024, 8, 1))
        with self.assertRaises(ValidationError):
            year.clean()


class TermModelTest(TestCase):
    """Tests for Term model."""

    def setUp(self):
        self.school = School.objects.create(name='Unity Park School', code='ups')
        self.year = AcademicYear.objects.create(
            school=self.school, name='2024/2025',
            start_date=date(2024, 9, 1), end_date=date(2025, 7, 31),
        )

    def test_session_label_and_current(self):
        first = Term.objects.create(academic_year=self.year, name='First Term', term_number=1, is_current=True)
        second = Term.objects.create(academic_year=self.year, name='Second Term', term_number=2, is_current=True)
        first.refresh_from_db()
        self.assertFalse(first.is_current)
        self.assertEqual(Term.get_current(self.school), second)
        self.assertEqual(second.session_label, '2024/2025')
        self.assertEqual(second.school, self.school)
        self.assertEqual(str(second), 'Second Term - 2024/2025')


class SchoolSettingsTest(TestCase):
    """Tests for cached school configuration."""

    def setUp(self):
        cache.clear()
        self.school = School.objects.create(name='Unity Park School', code='ups')

    def test_load_creates_with_defaults(self):
        school_settings = SchoolSettings.load(self.school)
        self.assertEqual(school_settings.display_name, 'Unity Park School')
        self.assertEqual(school_settings.term_weights, {'term1': 10, 'term2': 10, 'term3': 80})
        self.assertIsNotNone(cache.get(SchoolSettings.cache_key(self.school.pk)))

    def test_save_invalidates_cache(self):
        school_settings = SchoolSettings.load(self.school)
        SchoolSettings.objects.filter(pk=school_settings.pk).update(motto='Knowledge is light')
        self.assertEqual(SchoolSettings.load(self.school).motto, '')

        school_settings.total_school_days = 64
        school_settings.save()
        self.assertEqual(SchoolSettings.load(self.school).total_school_days, 64)

    def test_snapshot(self):
        snapshot = SchoolSettings.load(self.school).as_snapshot()
        self.assertEqual(snapshot['displayName'], 'Unity Park School')
        self.assertIsNone(snapshot['activeGradingSchemeId'])
        self.assertIsNone(snapshot['totalSchoolDays'])


class HealthCheckTest(TestCase):
    """Tests for health check endpoint."""

    def test_health_check(self):
        response = Client().get('/health/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'status': 'healthy'})
