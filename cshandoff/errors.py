"""
Error taxonomy shared by the record access layer, screens and relay endpoints.
Each error carries the HTTP status the relay endpoints answer with.
"""


class HandoffError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(HandoffError):
    """No active session."""
    status_code = 401


class Unauthorized(HandoffError):
    """Secret mismatch or access-control rejection."""
    status_code = 401


class SilentWriteRejection(Unauthorized):
    """A write that row-level security dropped without raising (zero rows affected)."""
    status_code = 403


class NotFound(HandoffError):
    status_code = 404


class ValidationFailed(HandoffError):
    """Field constraints unmet, or a backend row did not match the expected shape."""
    status_code = 400


class BackendError(HandoffError):
    """The database reported an error. The message is passed through verbatim."""
    status_code = 400
