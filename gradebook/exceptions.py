"""Errors raised by the gradebook engine."""
from django.core.exceptions import ValidationError


class GradebookError(Exception):
    """Base class for engine errors."""


class NoMatchingRuleError(GradebookError):
    """A score falls outside every band of the grading scheme."""

    def __init__(self, score, scheme=None):
        self.score = score
        self.scheme = scheme
        where = f" in scheme '{scheme}'" if scheme else ''
        super().__init__(f"No grading rule covers score {score}{where}")


class EmptyCohortError(GradebookError):
    """Ranking was requested for a scope with no eligible members."""


class InvalidOverrideError(ValidationError):
    """An attendance override records more days present than total days."""
