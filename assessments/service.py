"""Entry point for a calling API layer.

Build one :class:`AssessmentService` at process start and share it; it keeps
no per-request state, only references to the session factory and the
components wired around it::

    service = AssessmentService()
    started = service.start_attempt(assessment_id, user_id)
    service.save_answer(started.attempt_id, question_id, {"kind": "MCQ", "optionId": "B"})
    outcome = service.submit_attempt(started.attempt_id)
"""
from assessments.attempts import AnswerJournal, AttemptLifecycleManager
from assessments.authoring import AssessmentAuthoring
from assessments.db import get_session
from assessments.models import now_utc
from assessments.notifications import PublicationNotifier
from assessments.results import ResultBatchWriter, ResultView


class AssessmentService:
    def __init__(self, session_factory=get_session, clock=now_utc, notify: bool = True):
        self.session_factory = session_factory
        self.authoring = AssessmentAuthoring(session_factory)
        self.lifecycle = AttemptLifecycleManager(session_factory, clock=clock)
        self.journal = AnswerJournal(session_factory, clock=clock)
        self.writer = ResultBatchWriter(session_factory, clock=clock)
        self.view = ResultView(session_factory)
        self.notifier = None
        if notify:
            self.notifier = PublicationNotifier(session_factory)
            self.notifier.connect(sender=self.authoring)

    # authoring
    def create_assessment(self, coaching_id, batch_id, user_id, definition):
        return self.authoring.create(coaching_id, batch_id, user_id, definition)

    def add_questions(self, assessment_id, questions):
        return self.authoring.add_questions(assessment_id, questions)

    def delete_question(self, question_id):
        return self.authoring.delete_question(question_id)

    def update_status(self, assessment_id, status):
        return self.authoring.update_status(assessment_id, status)

    def get_assessment(self, assessment_id, include_answers=False):
        return self.authoring.get(assessment_id, include_answers=include_answers)

    def list_by_batch(self, batch_id, user_id=None):
        return self.authoring.list_by_batch(batch_id, user_id=user_id)

    def delete_assessment(self, assessment_id):
        return self.authoring.delete(assessment_id)

    # attempts
    def start_attempt(self, assessment_id, user_id):
        return self.lifecycle.start_or_resume(assessment_id, user_id)

    def save_answer(self, attempt_id, question_id, raw_answer):
        self.journal.save_answer(attempt_id, question_id, raw_answer)

    def get_saved_answers(self, attempt_id):
        return self.journal.get_saved_answers(attempt_id)

    def submit_attempt(self, attempt_id):
        return self.writer.submit(attempt_id)

    # results
    def get_attempt_result(self, attempt_id):
        return self.view.get_attempt_result(attempt_id)

    def get_attempts_by_assessment(self, assessment_id):
        return self.view.get_attempts_by_assessment(assessment_id)
