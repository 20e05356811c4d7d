"""
Signals raised by the assessment flows.

Receivers run after the originating transaction has committed. A receiver
that raises is logged and skipped; it never turns a committed change into a
reported failure.

Usage:
    from assessments.events import assessment_published

    @assessment_published.connect
    def on_published(sender, **payload):
        ...
"""
import logging

from blinker import Namespace

logger = logging.getLogger(__name__)

assessment_signals = Namespace()

# Fired when an assessment enters PUBLISHED (on create or via status change)
# Payload: assessment_id, coaching_id, batch_id, title, assessment_type, question_count
assessment_published = assessment_signals.signal("assessment-published")


def emit(signal, sender, **payload) -> int:
    """Send ``signal`` to each receiver in turn; returns how many succeeded."""
    delivered = 0
    for receiver in signal.receivers_for(sender):
        try:
            receiver(sender, **payload)
            delivered += 1
        except Exception:
            logger.exception("Receiver %r failed for signal %s", receiver, signal.name)
    return delivered
