import logging

from sqlmodel import select

from assessments.events import assessment_published
from assessments.models import Notification

logger = logging.getLogger(__name__)


class PublicationNotifier:
    """Writes a coaching-feed notification when an assessment is published."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def connect(self, sender):
        assessment_published.connect(self.on_published, sender=sender)

    def on_published(self, sender, *, assessment_id, coaching_id, batch_id, title, assessment_type, question_count, **_):
        is_quiz = assessment_type == "QUIZ"
        label = "Quiz" if is_quiz else "Test"
        with self.session_factory() as session:
            notice = Notification(
                coaching_id=coaching_id,
                type="NEW_QUIZ" if is_quiz else "NEW_ASSESSMENT",
                title=f"New {label}: {title}",
                message=(
                    f"A new {label.lower()} with {question_count} question(s) "
                    f"has been published in batch {batch_id}."
                ),
                data={"assessmentId": assessment_id, "batchId": batch_id, "type": assessment_type},
            )
            session.add(notice)
            session.commit()
            logger.info("Recorded publish notice for assessment %s", assessment_id)


def get_notifications_for_coaching(session_factory, coaching_id: int):
    with session_factory() as session:
        q = select(Notification).where(Notification.coaching_id == coaching_id).order_by(Notification.id.desc())
        return list(session.exec(q))
