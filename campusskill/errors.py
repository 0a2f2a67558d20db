# campusskill/errors.py
"""
Typed errors raised by the core services.

Every precondition failure in the task lifecycle, the ledger or the chat
manager is one of these. None of them is fatal: the HTTP layer turns them into
JSON responses and the caller decides whether to retry. Only ConflictError is
meant to be retried as-is (with fresh state).
"""


class CampusSkillError(Exception):
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class NotFoundError(CampusSkillError):
    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(CampusSkillError):
    status_code = 403
    code = "FORBIDDEN"


class InvalidStateError(CampusSkillError):
    status_code = 400
    code = "INVALID_STATE"


class ConflictError(CampusSkillError):
    """Lost an optimistic-concurrency race; the record changed since it was read."""
    status_code = 409
    code = "CONFLICT"


class DuplicateRatingError(CampusSkillError):
    status_code = 409
    code = "DUPLICATE_RATING"


class AlreadyAssignedError(CampusSkillError):
    status_code = 400
    code = "ALREADY_ASSIGNED"


class ValidationError(CampusSkillError):
    status_code = 422
    code = "VALIDATION_ERROR"


class AuthenticationError(CampusSkillError):
    status_code = 401
    code = "UNAUTHORIZED"
