import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, update
from sqlmodel import select

from assessments.db import get_session
from assessments.errors import NotFound, ValidationError
from assessments.events import assessment_published, emit
from assessments.models import (
    ASSESSMENT_STATUSES,
    DRAFT,
    PUBLISHED,
    Answer,
    Assessment,
    Attempt,
    Question,
    as_utc,
    now_utc,
)
from assessments.payloads import QuestionDefinition, dump_answer, parse_assessment, parse_questions
from assessments.serialize import assessment_summary, iso_utc, question_to_dict

logger = logging.getLogger(__name__)


def recompute_total_marks(session, assessment_id: int) -> float:
    """Set total_marks to the sum of the assessment's questions in one statement."""
    marks_sum = (
        select(func.coalesce(func.sum(Question.marks), 0))
        .where(Question.assessment_id == assessment_id)
        .scalar_subquery()
    )
    session.execute(
        update(Assessment)
        .where(Assessment.id == assessment_id)
        .values(total_marks=marks_sum, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    return session.exec(select(Assessment.total_marks).where(Assessment.id == assessment_id)).one()


def _question_row(assessment_id: int, question: QuestionDefinition, order_index: int) -> Question:
    options = None
    if question.options is not None:
        options = [o.model_dump(mode="json", by_alias=True, exclude_none=True) for o in question.options]
    return Question(
        assessment_id=assessment_id,
        type=question.type,
        prompt=question.prompt,
        image_url=question.image_url,
        options=options,
        correct_answer=dump_answer(question.correct_answer),
        marks=question.marks,
        order_index=question.order_index if question.order_index is not None else order_index,
        explanation=question.explanation,
    )


class AssessmentAuthoring:
    """Teacher-side flows: create, edit questions, publish, delete, browse."""

    def __init__(self, session_factory=get_session):
        self.session_factory = session_factory

    def create(self, coaching_id: int, batch_id: int, user_id: int, definition) -> Dict[str, Any]:
        """definition: dict (or AssessmentDefinition) with the assessment fields and an optional
        ``questions`` list; each question {type, prompt, options, correctAnswer, marks, ...}.
        Supplying questions publishes the assessment straight away.
        """
        parsed = parse_assessment(definition)
        with self.session_factory() as session:
            with session.begin():
                assessment = Assessment(
                    coaching_id=coaching_id,
                    batch_id=batch_id,
                    created_by_id=user_id,
                    title=parsed.title,
                    description=parsed.description,
                    type=parsed.type,
                    duration_minutes=parsed.duration_minutes,
                    start_time=as_utc(parsed.start_time),
                    end_time=as_utc(parsed.end_time),
                    passing_marks=parsed.passing_marks,
                    shuffle_questions=parsed.shuffle_questions,
                    shuffle_options=parsed.shuffle_options,
                    show_result_after=parsed.show_result_after,
                    max_attempts=parsed.max_attempts,
                    negative_marking=parsed.negative_marking,
                    status=PUBLISHED if parsed.questions else DRAFT,
                )
                session.add(assessment)
                session.flush()
                for i, q in enumerate(parsed.questions):
                    session.add(_question_row(assessment.id, q, i))
                session.flush()
                recompute_total_marks(session, assessment.id)
            detail = self._detail(session, assessment.id, include_answers=True)

        logger.info("Created assessment %s with %d question(s)", detail['id'], len(parsed.questions))
        if detail['status'] == PUBLISHED:
            self._announce(detail)
        return detail

    def add_questions(self, assessment_id: int, questions) -> Dict[str, Any]:
        parsed = parse_questions(questions)
        with self.session_factory() as session:
            with session.begin():
                if session.get(Assessment, assessment_id) is None:
                    raise NotFound("Assessment not found")
                last = session.exec(
                    select(func.max(Question.order_index)).where(Question.assessment_id == assessment_id)
                ).one()
                start = (last if last is not None else -1) + 1
                for i, q in enumerate(parsed):
                    session.add(_question_row(assessment_id, q, start + i))
                session.flush()
                total = recompute_total_marks(session, assessment_id)
            logger.info("Added %d question(s) to assessment %s, total marks %s", len(parsed), assessment_id, total)
            return self._detail(session, assessment_id, include_answers=True)

    def delete_question(self, question_id: int) -> float:
        """Remove a question (and any saved answers to it); returns the new total marks."""
        with self.session_factory() as session:
            with session.begin():
                question = session.get(Question, question_id)
                if question is None:
                    raise NotFound("Question not found")
                assessment_id = question.assessment_id
                session.execute(delete(Answer).where(Answer.question_id == question_id))
                session.delete(question)
                session.flush()
                total = recompute_total_marks(session, assessment_id)
        return total

    def update_status(self, assessment_id: int, status: str) -> Dict[str, Any]:
        if status not in ASSESSMENT_STATUSES:
            raise ValidationError(f"Unknown assessment status: {status}")
        with self.session_factory() as session:
            with session.begin():
                assessment = session.get(Assessment, assessment_id)
                if assessment is None:
                    raise NotFound("Assessment not found")
                previous = assessment.status
                assessment.status = status
                assessment.updated_at = now_utc()
                session.add(assessment)
            detail = self._detail(session, assessment_id, include_answers=False)

        # announce only after the status change is committed
        if status == PUBLISHED and previous != PUBLISHED:
            self._announce(detail)
        detail.pop('questions', None)
        return detail

    def delete(self, assessment_id: int) -> None:
        with self.session_factory() as session:
            with session.begin():
                if session.get(Assessment, assessment_id) is None:
                    raise NotFound("Assessment not found")
                attempt_ids = select(Attempt.id).where(Attempt.assessment_id == assessment_id)
                session.execute(delete(Answer).where(Answer.attempt_id.in_(attempt_ids)))
                session.execute(delete(Attempt).where(Attempt.assessment_id == assessment_id))
                session.execute(delete(Question).where(Question.assessment_id == assessment_id))
                session.execute(delete(Assessment).where(Assessment.id == assessment_id))
        logger.info("Deleted assessment %s", assessment_id)

    def get(self, assessment_id: int, include_answers: bool = False) -> Dict[str, Any]:
        with self.session_factory() as session:
            return self._detail(session, assessment_id, include_answers=include_answers)

    def list_by_batch(self, batch_id: int, user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Newest first. With ``user_id`` each entry carries that student's attempts."""
        with self.session_factory() as session:
            assessments = list(session.exec(
                select(Assessment)
                .where(Assessment.batch_id == batch_id)
                .order_by(Assessment.created_at.desc(), Assessment.id.desc())
            ))
            ids = [a.id for a in assessments]
            if not ids:
                return []
            question_counts = dict(session.exec(
                select(Question.assessment_id, func.count(Question.id))
                .where(Question.assessment_id.in_(ids))
                .group_by(Question.assessment_id)
            ).all())
            attempt_counts = dict(session.exec(
                select(Attempt.assessment_id, func.count(Attempt.id))
                .where(Attempt.assessment_id.in_(ids))
                .group_by(Attempt.assessment_id)
            ).all())
            results = [
                assessment_summary(a, question_counts.get(a.id, 0), attempt_counts.get(a.id, 0))
                for a in assessments
            ]
            if user_id is None:
                return results

            mine: Dict[int, list] = {}
            attempts = session.exec(
                select(Attempt)
                .where(Attempt.assessment_id.in_(ids), Attempt.user_id == user_id)
                .order_by(Attempt.started_at.desc(), Attempt.id.desc())
            )
            for at in attempts:
                mine.setdefault(at.assessment_id, []).append({
                    'id': at.id,
                    'status': at.status,
                    'total_score': at.total_score,
                    'percentage': at.percentage,
                    'submitted_at': iso_utc(at.submitted_at),
                })
            for entry in results:
                entry['my_attempts'] = mine.get(entry['id'], [])
            return results

    def _detail(self, session, assessment_id: int, include_answers: bool) -> Dict[str, Any]:
        assessment = session.get(Assessment, assessment_id, populate_existing=True)
        if assessment is None:
            raise NotFound("Assessment not found")
        questions = list(session.exec(
            select(Question)
            .where(Question.assessment_id == assessment_id)
            .order_by(Question.order_index, Question.id)
        ))
        attempt_count = session.exec(
            select(func.count(Attempt.id)).where(Attempt.assessment_id == assessment_id)
        ).one()
        data = assessment_summary(assessment, len(questions), attempt_count)
        data['questions'] = [question_to_dict(q, include_answer=include_answers) for q in questions]
        return data

    def _announce(self, detail: Dict[str, Any]) -> None:
        emit(
            assessment_published,
            self,
            assessment_id=detail['id'],
            coaching_id=detail['coaching_id'],
            batch_id=detail['batch_id'],
            title=detail['title'],
            assessment_type=detail['type'],
            question_count=detail['question_count'],
        )
