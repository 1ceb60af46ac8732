# Domain errors raised by the service layer and mapped to HTTP responses in main.
from enum import Enum
from typing import Optional


class QuizHubError(Exception):
    pass


class AuthFailure(str, Enum):
    INVALID_CREDENTIAL = "invalid-credential"
    INVALID_EMAIL = "invalid-email"
    WEAK_PASSWORD = "weak-password"
    EMAIL_ALREADY_IN_USE = "email-already-in-use"
    POPUP_CLOSED = "popup-closed"
    NETWORK_REQUEST_FAILED = "network-request-failed"
    SESSION_EXPIRED = "session-expired"


# The auth provider rejected a sign-in, sign-up or token.
class AuthError(QuizHubError):
    def __init__(self, reason: AuthFailure, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or reason.value)


class NotFoundError(QuizHubError):
    pass


# Authoring input failed a completeness rule. position is the 1-based question
# number, or None for quiz-level problems such as a missing title.
class ValidationError(QuizHubError):
    def __init__(self, message: str, position: Optional[int] = None):
        self.message = message
        self.position = position
        super().__init__(message)


# Any failure reading from or writing to the database.
class PersistenceError(QuizHubError):
    pass


# A quiz attempt action is not allowed in the attempt's current state.
class InvalidTransition(QuizHubError):
    pass
