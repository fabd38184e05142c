"""
Error types raised by the annotator host.

Host errors carry the HTTP status they should be reported with. Plugin code
raises InvalidConfiguration for rejected configuration/task parameters, and
RequestException when a forwarded web-app request fails.
"""


class AnnotatorHostError(Exception):
    """Base class for errors that map onto an HTTP response."""

    http_status = 500

    def __init__(self, message: str | None = None, http_status: int | None = None):
        super().__init__(message)
        self.message = message
        if http_status is not None:
            self.http_status = http_status

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message or type(self).__name__,
        }


class NotFound(AnnotatorHostError):
    """Unknown annotator or resource, or an unsupported web-app."""

    http_status = 404


class Forbidden(AnnotatorHostError):
    """The caller doesn't have the role the web-app requires."""

    http_status = 403


class BadRequest(AnnotatorHostError):
    """Malformed request, e.g. missing task id."""

    http_status = 400


class InternalError(AnnotatorHostError):
    """Persistence failure or unexpected annotator failure."""

    http_status = 500


class InvalidConfiguration(Exception):
    """Raised by annotators that reject a configuration or task parameters."""


class RequestException(Exception):
    """
    A request forwarded to an annotator failed.

    Args:
        message: Optional message to return as the response body
        http_status: Status code for the response
    """

    def __init__(self, message: str | None = None, http_status: int = 400):
        super().__init__(message)
        self.message = message
        self.http_status = http_status
