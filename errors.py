"""Typed failures raised by the service layer.

Each class carries the HTTP status the API maps it to, so callers can tell
a stale write (retry with fresh data) from a bad identifier.
"""


class LibraryError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(LibraryError):
    status_code = 401


class NotFound(LibraryError):
    status_code = 404


class Conflict(LibraryError):
    status_code = 409


class ValidationError(LibraryError):
    status_code = 400
