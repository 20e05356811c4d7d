from typing import Any, Dict, Optional

from assessments.models import Answer, Assessment, Attempt, Question, as_utc


def iso_utc(value) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def assessment_summary(a: Assessment, question_count: Optional[int] = None, attempt_count: Optional[int] = None) -> Dict[str, Any]:
    data = {
        'id': a.id,
        'coaching_id': a.coaching_id,
        'batch_id': a.batch_id,
        'created_by_id': a.created_by_id,
        'title': a.title,
        'description': a.description,
        'type': a.type,
        'duration_minutes': a.duration_minutes,
        'start_time': iso_utc(a.start_time),
        'end_time': iso_utc(a.end_time),
        'total_marks': a.total_marks,
        'passing_marks': a.passing_marks,
        'shuffle_questions': a.shuffle_questions,
        'shuffle_options': a.shuffle_options,
        'show_result_after': a.show_result_after,
        'status': a.status,
        'max_attempts': a.max_attempts,
        'negative_marking': a.negative_marking,
        'created_at': iso_utc(a.created_at),
    }
    if question_count is not None:
        data['question_count'] = question_count
    if attempt_count is not None:
        data['attempt_count'] = attempt_count
    return data


def question_to_dict(q: Question, include_answer: bool = False) -> Dict[str, Any]:
    data = {
        'id': q.id,
        'type': q.type,
        'prompt': q.prompt,
        'image_url': q.image_url,
        'options': q.options,
        'marks': q.marks,
        'order_index': q.order_index,
        'explanation': q.explanation,
    }
    # correct answers stay out of student views
    if include_answer:
        data['correct_answer'] = q.correct_answer
    return data


def attempt_to_dict(at: Attempt) -> Dict[str, Any]:
    return {
        'id': at.id,
        'assessment_id': at.assessment_id,
        'user_id': at.user_id,
        'status': at.status,
        'started_at': iso_utc(at.started_at),
        'submitted_at': iso_utc(at.submitted_at),
        'total_score': at.total_score,
        'max_score': at.max_score,
        'percentage': at.percentage,
        'correct_count': at.correct_count,
        'wrong_count': at.wrong_count,
        'skipped_count': at.skipped_count,
    }


def answer_to_dict(ans: Answer) -> Dict[str, Any]:
    return {
        'question_id': ans.question_id,
        'answer': ans.raw_answer,
        'is_correct': ans.is_correct,
        'marks_awarded': ans.marks_awarded,
        'answered_at': iso_utc(ans.answered_at),
    }
