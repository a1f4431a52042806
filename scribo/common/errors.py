# scribo/common/errors.py

"""
Error taxonomy shared by the authenticator and the resource dispatcher.
Each error carries the HTTP status it is rendered with.
"""


class ScriboError(Exception):
    """Base class for errors that map onto a client-visible status code."""
    status_code = 500

    def __init__(self, message: str = "", status_code: int = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class AuthMissing(ScriboError):
    """The request carries no Authorization header."""
    status_code = 401


class AuthInvalid(ScriboError):
    """Malformed header, bad MAC, stale timestamp, replayed nonce or bad payload hash."""
    status_code = 403


class UnknownIdentity(AuthInvalid):
    """No credential is stored for the claimed identity."""

    def __init__(self, identity: str):
        super().__init__(f"unknown identity {identity!r}")
        self.identity = identity


class CredentialLookupError(ScriboError):
    """The credential or nonce store failed for a reason other than a missing row."""
    status_code = 500


class MalformedRequest(ScriboError):
    """
    The request could not be interpreted, e.g. a non-numeric id in the path.
    Rendered as 500 for compatibility with existing clients.
    """
    status_code = 500


class NotFound(ScriboError):
    status_code = 404


class Conflict(ScriboError):
    """A write failed or touched an unexpected number of rows."""
    status_code = 409


class Internal(ScriboError):
    status_code = 500


class UnprocessableEntity(ScriboError):
    """The request body could not be decoded into the target record."""
    status_code = 422

    def __init__(self, reason: str, error: str):
        super().__init__(error)
        self.reason = reason
