"""Error taxonomy shared by the store, the session state machine and the gateway.

Every error carries a client-safe ``message``. The gateway turns any of these
into an ``error`` event for the originating connection; the HTTP API maps them
to a JSON error body and ``status_code``.
"""


class QuizSessionError(Exception):
    status_code = 400
    kind = 'error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(QuizSessionError):
    status_code = 404
    kind = 'not_found'


class QuizNotFound(NotFound):
    def __init__(self, message: str = 'Quiz not found'):
        super().__init__(message)


class SessionNotFound(NotFound):
    def __init__(self, message: str = 'Session not found'):
        super().__init__(message)


class ParticipantNotFound(NotFound):
    def __init__(self, message: str = 'Participant not found'):
        super().__init__(message)


class QuestionNotFound(NotFound):
    def __init__(self, message: str = 'Question not found'):
        super().__init__(message)


class StoreUnavailable(NotFound):
    """The backing store failed; callers only see a generic message."""

    status_code = 503
    kind = 'store_unavailable'

    def __init__(self, message: str = 'Temporary failure, please try again'):
        super().__init__(message)


class InvalidTransition(QuizSessionError):
    status_code = 409
    kind = 'invalid_transition'


class DuplicateAnswer(QuizSessionError):
    status_code = 409
    kind = 'duplicate_answer'

    def __init__(self, message: str = 'Already answered this question'):
        super().__init__(message)


class ValidationError(QuizSessionError):
    status_code = 400
    kind = 'validation'
