from django.apps import AppConfig


class GradebookConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'gradebook'

    def ready(self):
        # Keep term reports in sync with score entries
        from . import signals  # noqa: F401
