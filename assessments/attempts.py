import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from assessments.db import get_session
from assessments.errors import AlreadySubmitted, AttemptsExhausted, NotAvailable, NotFound, OutOfWindow
from assessments.models import IN_PROGRESS, PUBLISHED, SUBMITTED, Answer, Assessment, Attempt, Question, as_utc, now_utc
from assessments.payloads import dump_answer, parse_answer
from assessments.serialize import answer_to_dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartResult:
    attempt_id: int
    resumed: bool
    deadline: Optional[datetime] = None


def attempt_deadline(assessment: Assessment, started_at: datetime) -> Optional[datetime]:
    """Earliest of started_at + duration and the assessment's end time, if any."""
    candidates = []
    if assessment.duration_minutes:
        candidates.append(as_utc(started_at) + timedelta(minutes=assessment.duration_minutes))
    if assessment.end_time:
        candidates.append(as_utc(assessment.end_time))
    return min(candidates) if candidates else None


class AttemptLifecycleManager:
    def __init__(self, session_factory=get_session, clock=now_utc):
        self.session_factory = session_factory
        self.clock = clock

    def start_or_resume(self, assessment_id: int, user_id: int) -> StartResult:
        with self.session_factory() as session:
            try:
                with session.begin():
                    assessment = self._gate(session, assessment_id, user_id)
                    existing = self._open_attempt(session, assessment_id, user_id)
                    if existing is not None:
                        logger.info("Resuming attempt %s for user %s", existing.id, user_id)
                        return StartResult(existing.id, True, attempt_deadline(assessment, existing.started_at))
                    attempt = Attempt(assessment_id=assessment_id, user_id=user_id, started_at=self.clock())
                    session.add(attempt)
                    session.flush()
                    result = StartResult(attempt.id, False, attempt_deadline(assessment, attempt.started_at))
            except IntegrityError:
                # a concurrent start for the same student took the in-progress slot
                existing = self._open_attempt(session, assessment_id, user_id)
                if existing is None:
                    raise
                assessment = session.get(Assessment, assessment_id)
                logger.info("Start raced for user %s, resuming attempt %s", user_id, existing.id)
                return StartResult(existing.id, True, attempt_deadline(assessment, existing.started_at))

        logger.info("Started attempt %s on assessment %s for user %s", result.attempt_id, assessment_id, user_id)
        return result

    def _gate(self, session, assessment_id: int, user_id: int) -> Assessment:
        assessment = session.get(Assessment, assessment_id)
        if assessment is None:
            raise NotFound("Assessment not found")
        if assessment.status != PUBLISHED:
            raise NotAvailable("Assessment is not available")

        now = as_utc(self.clock())
        if assessment.start_time and now < as_utc(assessment.start_time):
            raise OutOfWindow("Assessment has not started yet")
        if assessment.end_time and now > as_utc(assessment.end_time):
            raise OutOfWindow("Assessment deadline has passed")

        submitted = session.exec(
            select(func.count(Attempt.id)).where(
                Attempt.assessment_id == assessment_id,
                Attempt.user_id == user_id,
                Attempt.status == SUBMITTED,
            )
        ).one()
        if submitted >= assessment.max_attempts:
            raise AttemptsExhausted("Maximum attempts reached")
        return assessment

    @staticmethod
    def _open_attempt(session, assessment_id: int, user_id: int) -> Optional[Attempt]:
        q = select(Attempt).where(
            Attempt.assessment_id == assessment_id,
            Attempt.user_id == user_id,
            Attempt.status == IN_PROGRESS,
        )
        return session.exec(q).first()


def lock_open_attempt(session, attempt_id: int) -> Attempt:
    """Take the attempt's write lock, or raise if it is missing or no longer IN_PROGRESS.

    Must be the first statement of the transaction. The no-op UPDATE holds the
    row (postgres) or the database write lock (sqlite) until commit, so a
    concurrent submit or autosave on the same attempt waits here and then sees
    the committed status.
    """
    locked = session.execute(
        update(Attempt)
        .where(Attempt.id == attempt_id, Attempt.status == IN_PROGRESS)
        .values(status=IN_PROGRESS)
        .execution_options(synchronize_session=False)
    )
    attempt = session.get(Attempt, attempt_id, populate_existing=True)
    if attempt is None:
        raise NotFound("Attempt not found")
    if locked.rowcount != 1:
        raise AlreadySubmitted("Attempt already submitted")
    return attempt


def _answer_upsert(dialect_name: str, values: Dict[str, Any]):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None
    stmt = insert(Answer).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=["attempt_id", "question_id"],
        set_={
            "raw_answer": stmt.excluded.raw_answer,
            "answered_at": stmt.excluded.answered_at,
        },
    )


class AnswerJournal:
    """Autosave of in-progress answers; correctness is left to grading."""

    def __init__(self, session_factory=get_session, clock=now_utc):
        self.session_factory = session_factory
        self.clock = clock

    def save_answer(self, attempt_id: int, question_id: int, raw_answer) -> None:
        """Upsert the answer for (attempt, question). ``None`` clears it."""
        answered_at = self.clock()
        with self.session_factory() as session:
            with session.begin():
                attempt = lock_open_attempt(session, attempt_id)
                question = session.get(Question, question_id)
                if question is None or question.assessment_id != attempt.assessment_id:
                    raise NotFound("Question not found")

                stored = None
                if raw_answer is not None:
                    stored = dump_answer(parse_answer(raw_answer, question.type, allow_tolerance=False))
                values = {
                    "attempt_id": attempt_id,
                    "question_id": question_id,
                    "raw_answer": stored,
                    "answered_at": answered_at,
                }
                stmt = _answer_upsert(session.get_bind().dialect.name, values)
                if stmt is not None:
                    session.execute(stmt)
                    return
                existing = session.exec(
                    select(Answer).where(Answer.attempt_id == attempt_id, Answer.question_id == question_id)
                ).first()
                if existing is None:
                    session.add(Answer(**values))
                else:
                    existing.raw_answer = stored
                    existing.answered_at = values["answered_at"]
                    session.add(existing)

    def get_saved_answers(self, attempt_id: int) -> List[Dict[str, Any]]:
        with self.session_factory() as session:
            if session.get(Attempt, attempt_id) is None:
                raise NotFound("Attempt not found")
            q = select(Answer).where(Answer.attempt_id == attempt_id).order_by(Answer.question_id)
            return [
                {k: v for k, v in answer_to_dict(a).items() if k in ('question_id', 'answer', 'answered_at')}
                for a in session.exec(q)
            ]
