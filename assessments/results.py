import logging
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import update
from sqlmodel import select

from assessments.attempts import lock_open_attempt
from assessments.db import get_session
from assessments.errors import NotFound
from assessments.grading import GradableQuestion, QuestionOutcome, grade
from assessments.models import SUBMITTED, Answer, Assessment, Attempt, Question, now_utc
from assessments.payloads import parse_answer
from assessments.serialize import answer_to_dict, attempt_to_dict, question_to_dict

logger = logging.getLogger(__name__)


def group_outcomes(outcomes: Iterable[QuestionOutcome]) -> Dict[Tuple[bool, float], List[int]]:
    """Question ids keyed by their (is_correct, marks_awarded) pair."""
    groups: Dict[Tuple[bool, float], List[int]] = {}
    for o in outcomes:
        groups.setdefault((o.is_correct, o.marks_awarded), []).append(o.question_id)
    return groups


class ResultBatchWriter:
    """Grades an attempt and commits outcomes plus the SUBMITTED transition together."""

    def __init__(self, session_factory=get_session, clock=now_utc):
        self.session_factory = session_factory
        self.clock = clock

    def submit(self, attempt_id: int) -> Dict[str, Any]:
        submitted_at = self.clock()
        with self.session_factory() as session:
            with session.begin():
                # only one submit can hold the attempt while it is IN_PROGRESS;
                # answers are read under the same lock so autosave cannot slip in
                attempt = lock_open_attempt(session, attempt_id)

                assessment = session.get(Assessment, attempt.assessment_id)
                questions = session.exec(
                    select(Question)
                    .where(Question.assessment_id == attempt.assessment_id)
                    .order_by(Question.order_index, Question.id)
                ).all()
                stored = session.exec(select(Answer).where(Answer.attempt_id == attempt_id)).all()

                gradable = [
                    GradableQuestion(q.id, q.type, q.marks, parse_answer(q.correct_answer, q.type))
                    for q in questions
                ]
                answers = {
                    a.question_id: parse_answer(a.raw_answer) if a.raw_answer is not None else None
                    for a in stored
                }
                result = grade(gradable, answers, assessment.negative_marking)

                session.execute(
                    update(Attempt)
                    .where(Attempt.id == attempt_id)
                    .values(
                        status=SUBMITTED,
                        submitted_at=submitted_at,
                        total_score=result.total_score,
                        max_score=result.max_score,
                        percentage=result.percentage,
                        correct_count=result.correct_count,
                        wrong_count=result.wrong_count,
                        skipped_count=result.skipped_count,
                    )
                    .execution_options(synchronize_session=False)
                )

                groups = group_outcomes(result.outcomes)
                for (is_correct, marks_awarded), question_ids in groups.items():
                    session.execute(
                        update(Answer)
                        .where(Answer.attempt_id == attempt_id, Answer.question_id.in_(question_ids))
                        .values(is_correct=is_correct, marks_awarded=marks_awarded)
                        .execution_options(synchronize_session=False)
                    )

            logger.info(
                "Submitted attempt %s: %s/%s (%s%%) in %d grouped update(s)",
                attempt_id, result.total_score, result.max_score, result.percentage, len(groups),
            )
            return attempt_to_dict(session.get(Attempt, attempt_id, populate_existing=True))


class ResultView:
    def __init__(self, session_factory=get_session):
        self.session_factory = session_factory

    def get_attempt_result(self, attempt_id: int) -> Dict[str, Any]:
        """Attempt aggregate, every stored answer, every question with its key and explanation.
        Whether explanations may be shown yet is up to the caller (see show_result_after).
        """
        with self.session_factory() as session:
            attempt = session.get(Attempt, attempt_id)
            if attempt is None:
                raise NotFound("Attempt not found")
            assessment = session.get(Assessment, attempt.assessment_id)
            answers = session.exec(
                select(Answer).where(Answer.attempt_id == attempt_id).order_by(Answer.question_id)
            ).all()
            questions = session.exec(
                select(Question)
                .where(Question.assessment_id == attempt.assessment_id)
                .order_by(Question.order_index, Question.id)
            ).all()
            data = attempt_to_dict(attempt)
            data['assessment'] = {
                'id': assessment.id,
                'title': assessment.title,
                'show_result_after': assessment.show_result_after,
                'negative_marking': assessment.negative_marking,
                'passing_marks': assessment.passing_marks,
            }
            data['answers'] = [answer_to_dict(a) for a in answers]
            data['questions'] = [question_to_dict(q, include_answer=True) for q in questions]
            return data

    def get_attempts_by_assessment(self, assessment_id: int) -> List[Dict[str, Any]]:
        """Submitted attempts, best percentage first; earlier submission wins a tie."""
        with self.session_factory() as session:
            if session.get(Assessment, assessment_id) is None:
                raise NotFound("Assessment not found")
            q = (
                select(Attempt)
                .where(Attempt.assessment_id == assessment_id, Attempt.status == SUBMITTED)
                .order_by(Attempt.percentage.desc(), Attempt.submitted_at.asc(), Attempt.id.asc())
            )
            return [attempt_to_dict(at) for at in session.exec(q)]
