class AssessmentError(Exception):
    """Base class for failures surfaced to the calling layer."""


class NotFound(AssessmentError, LookupError):
    pass


class NotAvailable(AssessmentError):
    """Assessment is not PUBLISHED."""


class OutOfWindow(AssessmentError):
    """Now falls outside the assessment's start/end time."""


class AttemptsExhausted(AssessmentError):
    pass


class AlreadySubmitted(AssessmentError):
    pass


class ValidationError(AssessmentError, ValueError):
    """Malformed payload, or one whose kind does not match the question."""
