"""
Management command to re-grade every score entry that uses a grading scheme.

Usage:
    python manage.py recalculate_grades --scheme=<uuid>
    python manage.py recalculate_grades --scheme=<uuid> --term=3
"""
from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from gradebook.models import GradingScheme
from gradebook.recalculation import recalculate_all


class Command(BaseCommand):
    help = 'Recalculate totals and grades for entries graded by a scheme'

    def add_arguments(self, parser):
        parser.add_argument(
            '--scheme',
            type=str,
            required=True,
            help='Grading scheme id',
        )
        parser.add_argument(
            '--term',
            type=int,
            help='Limit the batch to one term',
        )

    def handle(self, *args, **options):
        try:
            scheme = GradingScheme.objects.get(pk=options['scheme'])
        except (GradingScheme.DoesNotExist, ValidationError):
            raise CommandError(f"Grading scheme '{options['scheme']}' does not exist")

        result = recalculate_all(scheme.pk, term_id=options.get('term'))

        for failure in result.failures:
            self.stdout.write(self.style.WARNING(f"  Entry {failure['entry_id']}: {failure['reason']}"))

        self.stdout.write(self.style.SUCCESS(
            f'Recalculated {scheme.name}: {result.updated_count} updated, '
            f'{len(result.failures)} failed (run {result.run.pk})'
        ))
