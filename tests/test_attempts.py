from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from assessments.attempts import AttemptLifecycleManager
from assessments.db import get_session
from assessments.errors import AlreadySubmitted, AttemptsExhausted, NotAvailable, NotFound, OutOfWindow, ValidationError
from assessments.models import IN_PROGRESS, SUBMITTED, Answer, Assessment, Attempt
from assessments.service import AssessmentService
from conftest import mcq, msq, nat


def _question_ids(created):
    return [q['id'] for q in created['questions']]


def test_start_creates_then_resumes(service, scenario):
    first = service.start_attempt(scenario['id'], 501)
    assert first.resumed is False
    again = service.start_attempt(scenario['id'], 501)
    assert again.resumed is True
    assert again.attempt_id == first.attempt_id

    with get_session() as s:
        rows = s.exec(select(Attempt).where(Attempt.assessment_id == scenario['id'], Attempt.user_id == 501)).all()
    assert len(rows) == 1
    assert rows[0].status == IN_PROGRESS


def test_attempts_exhausted_after_max_submissions(service, scenario):
    started = service.start_attempt(scenario['id'], 502)
    service.submit_attempt(started.attempt_id)
    with pytest.raises(AttemptsExhausted):
        service.start_attempt(scenario['id'], 502)
    # other students are unaffected
    assert service.start_attempt(scenario['id'], 503).resumed is False


def test_multiple_attempts_allowed_up_to_limit(service, batch_id):
    created = service.create_assessment(1, batch_id, 7, {'title': 'Retry', 'maxAttempts': 2, 'questions': [mcq()]})
    first = service.start_attempt(created['id'], 504)
    service.submit_attempt(first.attempt_id)
    second = service.start_attempt(created['id'], 504)
    assert second.attempt_id != first.attempt_id
    service.submit_attempt(second.attempt_id)
    with pytest.raises(AttemptsExhausted):
        service.start_attempt(created['id'], 504)


def test_start_unknown_assessment(service):
    with pytest.raises(NotFound):
        service.start_attempt(987654, 1)


def test_start_draft_or_closed_assessment(service, batch_id):
    draft = service.create_assessment(1, batch_id, 7, {'title': 'Draft'})
    assert draft['status'] == 'DRAFT'
    with pytest.raises(NotAvailable):
        service.start_attempt(draft['id'], 505)

    closed = service.create_assessment(1, batch_id, 7, {'title': 'Closed', 'questions': [mcq()]})
    service.update_status(closed['id'], 'CLOSED')
    with pytest.raises(NotAvailable):
        service.start_attempt(closed['id'], 505)


def test_time_window_enforced(service, batch_id):
    now = datetime.now(timezone.utc)
    upcoming = service.create_assessment(1, batch_id, 7, {
        'title': 'Upcoming', 'startTime': now + timedelta(days=1), 'questions': [mcq()],
    })
    with pytest.raises(OutOfWindow):
        service.start_attempt(upcoming['id'], 506)

    finished = service.create_assessment(1, batch_id, 7, {
        'title': 'Finished',
        'startTime': now - timedelta(days=2),
        'endTime': now - timedelta(days=1),
        'questions': [mcq()],
    })
    with pytest.raises(OutOfWindow):
        service.start_attempt(finished['id'], 506)


def test_window_checked_against_injected_clock(batch_id):
    start = datetime(2031, 5, 1, 9, 0, tzinfo=timezone.utc)
    end = datetime(2031, 5, 1, 11, 0, tzinfo=timezone.utc)
    inside = AssessmentService(clock=lambda: start + timedelta(minutes=30))
    created = inside.create_assessment(1, batch_id, 7, {
        'title': 'Timed', 'startTime': start, 'endTime': end, 'durationMinutes': 60, 'questions': [mcq()],
    })
    started = inside.start_attempt(created['id'], 507)
    assert started.deadline == start + timedelta(minutes=90)

    late = AssessmentService(clock=lambda: end + timedelta(seconds=1))
    with pytest.raises(OutOfWindow):
        late.start_attempt(created['id'], 508)


def test_deadline_capped_by_end_time(batch_id):
    start = datetime(2031, 6, 1, 9, 0, tzinfo=timezone.utc)
    end = datetime(2031, 6, 1, 9, 20, tzinfo=timezone.utc)
    svc = AssessmentService(clock=lambda: start + timedelta(minutes=5))
    created = svc.create_assessment(1, batch_id, 7, {
        'title': 'Short', 'startTime': start, 'endTime': end, 'durationMinutes': 60, 'questions': [mcq()],
    })
    assert svc.start_attempt(created['id'], 509).deadline == end


def test_no_deadline_without_duration_or_end(service, scenario):
    assert service.start_attempt(scenario['id'], 510).deadline is None


def test_save_answer_last_write_wins(service, scenario):
    q1, q2 = _question_ids(scenario)
    attempt_id = service.start_attempt(scenario['id'], 511).attempt_id
    service.save_answer(attempt_id, q1, {'kind': 'MCQ', 'optionId': 'B'})
    service.save_answer(attempt_id, q1, {'kind': 'MCQ', 'optionId': 'A'})
    service.save_answer(attempt_id, q2, {'kind': 'NAT', 'value': 4.2})

    with get_session() as s:
        rows = s.exec(select(Answer).where(Answer.attempt_id == attempt_id)).all()
    assert len(rows) == 2
    by_q = {r.question_id: r for r in rows}
    assert by_q[q1].raw_answer == {'kind': 'MCQ', 'optionId': 'A'}
    assert by_q[q1].is_correct is None and by_q[q1].marks_awarded is None

    saved = service.get_saved_answers(attempt_id)
    assert [a['question_id'] for a in saved] == sorted([q1, q2])
    assert saved[0]['answered_at'] is not None


def test_save_answer_validates_kind(service, scenario):
    q1, _ = _question_ids(scenario)
    attempt_id = service.start_attempt(scenario['id'], 512).attempt_id
    with pytest.raises(ValidationError):
        service.save_answer(attempt_id, q1, {'kind': 'NAT', 'value': 1})
    with pytest.raises(ValidationError):
        service.save_answer(attempt_id, q1, 'A')
    assert service.get_saved_answers(attempt_id) == []


def test_save_answer_unknown_attempt_or_foreign_question(service, scenario, batch_id):
    other = service.create_assessment(1, batch_id, 7, {'title': 'Other', 'questions': [mcq()]})
    attempt_id = service.start_attempt(scenario['id'], 513).attempt_id
    with pytest.raises(NotFound):
        service.save_answer(424242, _question_ids(scenario)[0], {'kind': 'MCQ', 'optionId': 'A'})
    with pytest.raises(NotFound):
        service.save_answer(attempt_id, _question_ids(other)[0], {'kind': 'MCQ', 'optionId': 'A'})


def test_save_answer_after_submit_rejected(service, scenario):
    q1, _ = _question_ids(scenario)
    attempt_id = service.start_attempt(scenario['id'], 514).attempt_id
    service.save_answer(attempt_id, q1, {'kind': 'MCQ', 'optionId': 'A'})
    service.submit_attempt(attempt_id)
    with pytest.raises(AlreadySubmitted):
        service.save_answer(attempt_id, q1, {'kind': 'MCQ', 'optionId': 'B'})
    assert service.get_saved_answers(attempt_id)[0]['answer'] == {'kind': 'MCQ', 'optionId': 'A'}


def test_cleared_answer_grades_as_skipped(service, batch_id):
    created = service.create_assessment(1, batch_id, 7, {
        'title': 'Clear', 'negativeMarking': 1, 'questions': [msq(correct=('A', 'C'), marks=2), nat(value=3)],
    })
    q1, q2 = _question_ids(created)
    attempt_id = service.start_attempt(created['id'], 515).attempt_id
    service.save_answer(attempt_id, q1, {'kind': 'MSQ', 'optionIds': ['A']})
    service.save_answer(attempt_id, q1, None)
    service.save_answer(attempt_id, q2, {'kind': 'NAT', 'value': 3})
    outcome = service.submit_attempt(attempt_id)
    assert outcome['skipped_count'] == 1
    assert outcome['wrong_count'] == 0
    assert outcome['total_score'] == 1


def test_single_open_attempt_enforced_by_index():
    with get_session() as s:
        assessment = Assessment(coaching_id=1, batch_id=1, created_by_id=1, title='Index')
        s.add(assessment)
        s.commit()
        s.add(Attempt(assessment_id=assessment.id, user_id=9, status=SUBMITTED))
        s.add(Attempt(assessment_id=assessment.id, user_id=9, status=SUBMITTED))
        s.add(Attempt(assessment_id=assessment.id, user_id=9))
        s.commit()
        s.add(Attempt(assessment_id=assessment.id, user_id=9))
        with pytest.raises(IntegrityError):
            s.commit()


def test_concurrent_start_resumes_winner(service, batch_id, monkeypatch):
    created = service.create_assessment(1, batch_id, 7, {'title': 'Race', 'questions': [mcq()]})
    winner = service.start_attempt(created['id'], 901)

    real_lookup = AttemptLifecycleManager._open_attempt
    calls = []

    def stale_lookup(session, assessment_id, user_id):
        calls.append(assessment_id)
        # the first check runs before the other request's insert is visible
        if len(calls) == 1:
            return None
        return real_lookup(session, assessment_id, user_id)

    monkeypatch.setattr(AttemptLifecycleManager, '_open_attempt', staticmethod(stale_lookup))
    loser = service.start_attempt(created['id'], 901)
    assert loser.resumed is True
    assert loser.attempt_id == winner.attempt_id
    assert len(calls) == 2


def test_autosave_racing_submit_cannot_change_graded_answer(service, scenario):
    q1, _ = _question_ids(scenario)
    attempt_id = service.start_attempt(scenario['id'], 902).attempt_id
    service.save_answer(attempt_id, q1, {'kind': 'MCQ', 'optionId': 'B'})

    def submit_first():
        # the submit commits while the autosave request is already under way
        service.submit_attempt(attempt_id)
        return datetime.now(timezone.utc)

    service.journal.clock = submit_first
    with pytest.raises(AlreadySubmitted):
        service.save_answer(attempt_id, q1, {'kind': 'MCQ', 'optionId': 'A'})

    result = service.get_attempt_result(attempt_id)
    assert result['status'] == 'SUBMITTED'
    assert result['total_score'] == 0
    assert [(a['answer'], a['is_correct'], a['marks_awarded']) for a in result['answers']] == [
        ({'kind': 'MCQ', 'optionId': 'B'}, False, -0.5),
    ]


def test_submitted_nat_answer_cannot_carry_tolerance(service, scenario):
    _, q2 = _question_ids(scenario)
    attempt_id = service.start_attempt(scenario['id'], 903).attempt_id
    with pytest.raises(ValidationError):
        service.save_answer(attempt_id, q2, {'kind': 'NAT', 'value': 9, 'tolerance': 5})
    assert service.get_saved_answers(attempt_id) == []
    service.save_answer(attempt_id, q2, {'kind': 'NAT', 'value': 5})
    assert service.get_saved_answers(attempt_id)[0]['answer'] == {'kind': 'NAT', 'value': 5.0}
