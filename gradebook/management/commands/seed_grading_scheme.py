"""
Management command to seed a default A-F grading scheme for a school.

Usage:
    python manage.py seed_grading_scheme --school=upss
    python manage.py seed_grading_scheme --school=upss --force --activate
"""
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from core.models import School, SchoolSettings
from gradebook.models import GradingScheme, GradingSchemeRule

DEFAULT_SCHEME_NAME = 'Standard A-F'

# Bands are inclusive; scores are stored to two decimal places
DEFAULT_BANDS = [
    {'grade_label': 'A', 'min': '80.00', 'max': '100.00', 'gpa': '4.00', 'remark': 'Excellent'},
    {'grade_label': 'B', 'min': '70.00', 'max': '79.99', 'gpa': '3.00', 'remark': 'Very Good'},
    {'grade_label': 'C', 'min': '60.00', 'max': '69.99', 'gpa': '2.00', 'remark': 'Good'},
    {'grade_label': 'D', 'min': '50.00', 'max': '59.99', 'gpa': '1.00', 'remark': 'Pass'},
    {'grade_label': 'E', 'min': '40.00', 'max': '49.99', 'gpa': '0.50', 'remark': 'Weak Pass'},
    {'grade_label': 'F', 'min': '0.00', 'max': '39.99', 'gpa': '0.00', 'remark': 'Fail'},
]


class Command(BaseCommand):
    help = 'Seed a default A-F grading scheme for a school and report coverage gaps'

    def add_arguments(self, parser):
        parser.add_argument(
            '--school',
            type=str,
            required=True,
            help='Code of the school to seed',
        )
        parser.add_argument(
            '--force',
            action='store_true',
            help='Replace the rules of an existing default scheme',
        )
        parser.add_argument(
            '--activate',
            action='store_true',
            help="Make the scheme the school's active grading scheme",
        )

    def handle(self, *args, **options):
        try:
            school = School.objects.get(code=options['school'])
        except School.DoesNotExist:
            raise CommandError(f"School '{options['school']}' does not exist")

        with transaction.atomic():
            scheme = self.create_scheme(school, options['force'])
            if options['activate']:
                school_settings = SchoolSettings.load(school)
                school_settings.active_grading_scheme = scheme
                school_settings.save()
                self.stdout.write(f'  Activated {scheme.name} for {school.name}')

        gaps = scheme.validate_coverage()
        if gaps:
            for start, end in gaps:
                self.stdout.write(self.style.WARNING(f'  No rule covers {start} - {end}'))
        else:
            self.stdout.write('  Rules cover every score from 0 to 100')

        self.stdout.write(self.style.SUCCESS(f'Successfully seeded grading scheme for {school.name}'))

    def create_scheme(self, school, force):
        scheme, created = GradingScheme.objects.get_or_create(
            school=school,
            name=DEFAULT_SCHEME_NAME,
            defaults={'gpa_max': '4.00', 'is_active': True},
        )
        if not created and not force:
            self.stdout.write(f'{scheme.name} already exists. Use --force to overwrite.')
            return scheme

        if not created:
            scheme.rules.all().delete()

        for band in DEFAULT_BANDS:
            GradingSchemeRule.objects.create(
                scheme=scheme,
                grade_label=band['grade_label'],
                min_score=band['min'],
                max_score=band['max'],
                gpa_value=band['gpa'],
                remark=band['remark'],
            )

        self.stdout.write(self.style.SUCCESS(f'Created {scheme.name} with {len(DEFAULT_BANDS)} grades'))
        return scheme
