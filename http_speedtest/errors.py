"""Exceptions shared by the speedtest handler and the HTTP server."""

from http import HTTPStatus
from typing import Optional


class HTTPError(Exception):
    """An error that should be answered with an HTTP status code.

    The server renders it as ``"<code> <reason>: <message>"`` in a plain
    text body, or ``"<code> <reason>"`` when there is no message.
    """

    def __init__(self, status: int, message: Optional[str] = None):
        self.status = HTTPStatus(status)
        self.message = message
        super().__init__(message or self.status.phrase)

    def render(self) -> str:
        """Return the response body for this error."""
        text = f"{self.status.value} {self.status.phrase}"
        if self.message:
            text += f": {self.message}"
        return text


class SizeSpecError(ValueError):
    """Raised when a human-readable byte size cannot be parsed."""


class RangeError(ValueError):
    """Raised when a Range header is malformed or cannot be satisfied."""

    def __init__(self, message: str, no_overlap: bool = False):
        super().__init__(message)
        self.no_overlap = no_overlap
