"""
Signals that keep StudentTermReport totals in sync with ScoreEntry changes.

Bulk operations suspend them with ``signals_disabled()`` and sync the
affected reports once at the end.
"""
import logging
import threading

from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from .aggregation import sync_term_report
from .models import ScoreEntry

logger = logging.getLogger(__name__)

# Thread-local storage for signal disabling (thread-safe)
_thread_locals = threading.local()


def _is_signals_disabled():
    """Check if signals are disabled for the current thread."""
    return getattr(_thread_locals, 'signals_disabled', False)


def disable_signals():
    """Disable auto-sync signals for the current thread (for bulk operations)."""
    _thread_locals.signals_disabled = True


def enable_signals():
    """Re-enable auto-sync signals for the current thread."""
    _thread_locals.signals_disabled = False


class signals_disabled:
    """Context manager to temporarily disable signals (thread-safe)."""

    def __enter__(self):
        self._previous_state = _is_signals_disabled()
        disable_signals()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self._previous_state:
            enable_signals()
        return False


@receiver(post_save, sender=ScoreEntry)
def score_entry_saved(sender, instance, created, **kwargs):
    """Refresh the term report when a score entry is saved."""
    if _is_signals_disabled():
        return
    sync_term_report(instance.student_id, instance.term_id)


@receiver(post_delete, sender=ScoreEntry)
def score_entry_deleted(sender, instance, **kwargs):
    """Refresh the term report when a score entry is deleted."""
    if _is_signals_disabled():
        return
    sync_term_report(instance.student_id, instance.term_id)
