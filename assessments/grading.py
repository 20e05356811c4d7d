"""Scoring of a submitted attempt.

``grade`` is a pure function: it takes the question set, the stored answers
and the assessment's negative-marking ratio and returns per-question outcomes
plus the aggregate. It performs no I/O; writing the outcomes back is
:mod:`assessments.results`' job.
"""
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple

from assessments.payloads import MCQAnswer, MSQAnswer, NATAnswer


@dataclass(frozen=True)
class GradableQuestion:
    id: int
    type: str
    marks: float
    correct_answer: object  # MCQAnswer | MSQAnswer | NATAnswer


@dataclass(frozen=True)
class QuestionOutcome:
    question_id: int
    is_correct: bool
    marks_awarded: float
    skipped: bool = False


@dataclass(frozen=True)
class GradingResult:
    total_score: float
    max_score: float
    percentage: float
    correct_count: int
    wrong_count: int
    skipped_count: int
    outcomes: Tuple[QuestionOutcome, ...] = field(default_factory=tuple)


def _check_mcq(correct: MCQAnswer, submitted: MCQAnswer) -> bool:
    return correct.option_id == submitted.option_id


def _check_msq(correct: MSQAnswer, submitted: MSQAnswer) -> bool:
    # exact set match, no partial credit
    return correct.option_ids == submitted.option_ids


def _check_nat(correct: NATAnswer, submitted: NATAnswer) -> bool:
    tolerance = correct.tolerance or 0.0
    return abs(correct.value - submitted.value) <= tolerance


_CHECKERS: Dict[str, Callable[[object, object], bool]] = {
    "MCQ": _check_mcq,
    "MSQ": _check_msq,
    "NAT": _check_nat,
}


def is_correct(question: GradableQuestion, answer) -> bool:
    checker = _CHECKERS.get(question.type)
    if checker is None:
        return False
    if answer.kind != question.type or question.correct_answer.kind != question.type:
        return False
    return checker(question.correct_answer, answer)


def compute_percentage(total_score: float, max_score: float) -> float:
    """Two-decimal percentage, halves rounded up."""
    if not max_score or max_score <= 0:
        return 0.0
    return math.floor(total_score / max_score * 10000 + 0.5) / 100


def grade(
    questions: Iterable[GradableQuestion],
    answers: Mapping[int, Optional[object]],
    negative_marking_ratio: float = 0.0,
) -> GradingResult:
    total_score = 0.0
    max_score = 0.0
    correct_count = wrong_count = skipped_count = 0
    outcomes = []

    for q in questions:
        max_score += q.marks
        submitted = answers.get(q.id)

        if submitted is None:
            skipped_count += 1
            outcomes.append(QuestionOutcome(q.id, False, 0.0, skipped=True))
            continue

        if is_correct(q, submitted):
            correct_count += 1
            total_score += q.marks
            outcomes.append(QuestionOutcome(q.id, True, float(q.marks)))
        else:
            wrong_count += 1
            penalty = negative_marking_ratio * q.marks
            total_score -= penalty
            outcomes.append(QuestionOutcome(q.id, False, -penalty if penalty else 0.0))

    total_score = max(0.0, total_score)
    return GradingResult(
        total_score=total_score,
        max_score=max_score,
        percentage=compute_percentage(total_score, max_score),
        correct_count=correct_count,
        wrong_count=wrong_count,
        skipped_count=skipped_count,
        outcomes=tuple(outcomes),
    )
