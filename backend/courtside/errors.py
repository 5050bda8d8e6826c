"""
Error taxonomy for match operations.

Every error carries a stable ``kind`` (the taxonomy bucket) and ``code``
(the specific condition). A ``conflict`` means resynchronize and retry.
"""
from typing import Any, Dict


class CourtsideError(Exception):
    """Base exception for all domain errors."""

    kind = "error"
    code = "error"
    status_code = 500

    def __init__(self, message: str = "", code: str = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "kind": self.kind, "code": self.code}


# ========== Taxonomy ==========


class AuthenticationError(CourtsideError):
    """No identity on the request."""

    kind = "authentication"
    code = "not_authenticated"
    status_code = 401


class AuthorizationError(CourtsideError):
    """Identity present, but no grant covers the requested scope."""

    kind = "authorization"
    code = "forbidden"
    status_code = 403


class ValidationError(CourtsideError):
    """Malformed input."""

    kind = "validation"
    code = "invalid_input"
    status_code = 422


class ConflictError(CourtsideError):
    kind = "conflict"
    code = "conflict"
    status_code = 409


class NotFoundError(CourtsideError):
    kind = "not_found"
    code = "not_found"
    status_code = 404


class StateViolationError(CourtsideError):
    """Transition is illegal from the current status."""

    kind = "state_violation"
    code = "illegal_transition"
    status_code = 400


class DependencyError(CourtsideError):
    """A side effect of a committed operation failed."""

    kind = "dependency"
    code = "side_effect_failed"
    status_code = 502


# ========== Specific conditions ==========


class VersionConflictError(ConflictError):
    code = "version_mismatch"

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Match version is {actual}, expected {expected}; resynchronize and retry")
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["current_version"] = self.actual
        return data


class AlreadyCheckedInError(ConflictError):
    code = "already_checked_in"


class NoWinnerError(StateViolationError):
    code = "no_winner"


class MatchClosedError(StateViolationError):
    code = "match_closed"


class NotFinishedError(StateViolationError):
    code = "not_finished"


class NothingToUndoError(StateViolationError):
    code = "nothing_to_undo"
