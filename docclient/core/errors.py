"""Error taxonomy and the message-based failure classifier."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    CAPACITY_LIMITED = "capacity_limited"
    REMOTE_UNAVAILABLE = "remote_unavailable"
    PARSE = "parse"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """Classified failure attached to an analysis attempt."""

    kind: ErrorKind
    message: str


class ClientError(Exception):
    """Base class for every failure the session controller knows how to surface."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=self.message)


class DocumentValidationError(ClientError):
    """Raised when a selected document fails local checks."""

    kind = ErrorKind.VALIDATION


class AuthError(ClientError):
    kind = ErrorKind.AUTH


class NotFoundError(ClientError):
    kind = ErrorKind.NOT_FOUND


class CapacityLimitedError(ClientError):
    kind = ErrorKind.CAPACITY_LIMITED


class RemoteUnavailableError(ClientError):
    """Raised for transport failures and 5xx responses."""

    kind = ErrorKind.REMOTE_UNAVAILABLE


class ParseError(ClientError):
    """Raised when a structured response payload cannot be parsed."""

    kind = ErrorKind.PARSE


class RemoteServiceError(ClientError):
    """Raw error envelope returned by the remote service, not yet classified.

    ``server_message`` is False when ``message`` is the client's own default
    text; only the status code is classified then.
    """

    def __init__(self, message: str, status_code: int | None = None, *, server_message: bool = True) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message

    @property
    def kind(self) -> ErrorKind:  # type: ignore[override]
        return classify(self.message if self.server_message else None, self.status_code)


# Message rules are checked before status codes; first match wins.
MESSAGE_RULES: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (
        ErrorKind.CAPACITY_LIMITED,
        (
            "quota",
            "too many requests",
            "rate limit",
            "rate-limit",
            "ratelimit",
            "failed to generate summary",
        ),
    ),
    (ErrorKind.AUTH, ("token is not valid", "no token", "unauthorized", "authorization denied")),
)

STATUS_RULES: tuple[tuple[ErrorKind, frozenset[int]], ...] = (
    (ErrorKind.VALIDATION, frozenset({400, 413, 415, 422})),
    (ErrorKind.AUTH, frozenset({401, 403})),
    (ErrorKind.NOT_FOUND, frozenset({404})),
    (ErrorKind.CAPACITY_LIMITED, frozenset({429})),
)


def classify(message: str | None, status_code: int | None = None) -> ErrorKind:
    """Map an error message (and optional HTTP status) onto an :class:`ErrorKind`."""

    lowered = (message or "").lower()
    for kind, needles in MESSAGE_RULES:
        if any(needle in lowered for needle in needles):
            return kind

    if status_code is not None:
        for kind, codes in STATUS_RULES:
            if status_code in codes:
                return kind
        if status_code >= 500:
            return ErrorKind.REMOTE_UNAVAILABLE

    return ErrorKind.UNKNOWN


def classify_exception(exc: BaseException) -> ErrorInfo:
    """Classify an exception raised by a remote call."""

    if isinstance(exc, ClientError):
        return ErrorInfo(kind=exc.kind, message=exc.message)
    return ErrorInfo(kind=classify(str(exc)), message=str(exc) or exc.__class__.__name__)
