"""Exception taxonomy shared by the ledger query client and challenge protocol."""

from __future__ import annotations

from typing import Any

import httpx

# HTTP status codes
HTTP_NOT_FOUND = 404


class LedgerError(RuntimeError):
    """Base exception raised for ledger client failures."""


class ConfigurationError(LedgerError):
    """Raised for caller-side misuse, before any network I/O happens.

    Examples are two filters active on one builder, an unknown resource
    name for a filter, or an out-of-range query parameter.
    """

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.detail = detail


class NetworkError(LedgerError):
    """Raised when the query endpoint answers with a non-2xx status or is unreachable.

    Attributes:
        status: HTTP status code, or None for transport-level failures.
        response: Decoded response body (JSON document or text) when available.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response: Any = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.response = response

    def get_response(self) -> Any:
        return self.response


class NotFoundError(NetworkError):
    """Raised when the query endpoint answers 404."""


class BadResponseError(NetworkError):
    """Raised when a response cannot be normalised or a submission is rejected."""


class InvalidChallengeError(LedgerError):
    """Raised when a challenge transaction fails verification.

    The message names the first check that failed. A failed challenge is a
    completed authentication rejection and is never retried.
    """


class MemoError(ConfigurationError):
    """Raised when a payload does not fit in a text memo."""


def response_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text."""
    try:
        return response.json()
    except ValueError:
        return response.text


def check_response(response: httpx.Response) -> Any:
    """Classify a response into the error taxonomy and return its decoded body.

    Raises:
        NotFoundError: On HTTP 404.
        NetworkError: On any other non-2xx status.
    """
    body = response_body(response)
    if response.status_code == HTTP_NOT_FOUND:
        raise NotFoundError(
            response.reason_phrase or "Not Found",
            status=response.status_code,
            response=body,
        )
    if not response.is_success:
        raise NetworkError(
            response.reason_phrase or f"HTTP {response.status_code}",
            status=response.status_code,
            response=body,
        )
    return body
