"""
Domain errors raised by the exam services.

Every error is recoverable and reported to the caller; the API layer renders
them through a single exception handler using ``status_code`` and ``error_type``.
"""


class ExamError(Exception):
    status_code = 500
    error_type = "exam_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ExamError):
    status_code = 404
    error_type = "not_found"


class ResultsNotReady(NotFound):
    """Results or ranking requested for a session that has not been completed."""

    error_type = "not_ready"


class InvalidState(ExamError):
    status_code = 409
    error_type = "invalid_state"


class InsufficientQuestions(ExamError):
    status_code = 400
    error_type = "insufficient_questions"

    def __init__(self, found: int, needed: int):
        super().__init__(f"Not enough questions matching criteria. Found {found}, need {needed}")
        self.found = found
        self.needed = needed


class ValidationError(ExamError):
    status_code = 400
    error_type = "validation_error"
