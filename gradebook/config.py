"""
Configuration settings for the gradebook app.

These values can be overridden in Django settings by prefixing with GRADEBOOK_.
For example, to rank with gaps after ties:
    GRADEBOOK_RANKING_METHOD = 'competition'

All configuration values are lazily loaded to avoid Django setup issues.
"""


def _get_setting(name, default):
    """Get a gradebook setting from Django settings or use default."""
    from django.conf import settings
    return getattr(settings, f'GRADEBOOK_{name}', default)


# Define defaults as constants for direct use when Django settings are not needed
_DEFAULTS = {
    # Ranking: 'dense' (1, 1, 2) or 'competition' (1, 1, 3)
    'RANKING_METHOD': 'dense',

    # Student statuses left out of every ranking population
    'EXCLUDED_STUDENT_STATUSES': ('Withdrawn', 'Graduated', 'Expelled', 'Inactive'),

    # Attendance cascade
    # Accept an override recorded against any group the student belongs to
    'ATTENDANCE_ANY_GROUP_OVERRIDE': True,
    # Computed totals below this fraction of the term's school days fall
    # through to the term default (0 = only an empty register falls through)
    'ATTENDANCE_MIN_COVERAGE': 0,

    # Bulk operation settings
    'BULK_UPDATE_BATCH_SIZE': 500,

    # Cache timeout for SchoolSettings.load (seconds)
    'SCHOOL_SETTINGS_CACHE_TIMEOUT': 60 * 60,

    # Celery task settings
    'TASK_SOFT_TIME_LIMIT': 25 * 60,
    'TASK_TIME_LIMIT': 30 * 60,
}


class _ConfigProxy:
    """
    Lazy configuration proxy that loads settings only when accessed.
    This avoids Django setup issues during module import.
    """

    def __getattr__(self, name):
        if name in _DEFAULTS:
            return _get_setting(name, _DEFAULTS[name])
        raise AttributeError(f"Unknown config setting: {name}")


# Module-level proxy object for attribute access
_config = _ConfigProxy()


def __getattr__(name):
    """Enable module-level attribute access via the config proxy."""
    return getattr(_config, name)
