"""Failure handling for analysis calls and the capacity-limit sample summary."""
from __future__ import annotations

from dataclasses import dataclass

from docclient.core.errors import ErrorInfo, ErrorKind, classify_exception
from docclient.core.schema import SummaryRecord
from docclient.domain import Notice

SAMPLE_MARKER = "[Sample - AI service limit reached]"

CAPACITY_ERROR_MESSAGE = (
    "Our AI service is currently experiencing high demand. "
    "Please try again later or register for full access with higher limits."
)
FALLBACK_NOTICE_MESSAGE = "Showing sample summary data due to high demand. Register for full access."
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please log in again."
RETRY_SUGGESTION = "Please try again in a moment."

PLACEHOLDER_PHRASES: tuple[str, ...] = (
    "sample key point",
    "this is a sample",
)
PLACEHOLDER_WARNING = (
    "Our AI is still learning about this type of document. "
    "The summary may be generic. For better results, please register."
)


def build_sample_summary() -> SummaryRecord:
    """Placeholder record shown when the AI service is over capacity.

    Every entry carries :data:`SAMPLE_MARKER` so it cannot be mistaken for a
    real summary.
    """

    def mark(text: str) -> str:
        return f"{SAMPLE_MARKER} {text}"

    return SummaryRecord(
        document_overview=mark(
            "We're currently experiencing high demand on our AI service. This is a sample "
            "summary to demonstrate how the results would appear."
        ),
        key_parties=[mark("Party names appear here once the AI service is available")],
        important_clauses=[
            mark("This is a sample key point"),
            mark("Free tier usage is currently at capacity"),
            mark("For full functionality, please register for full access"),
            mark("Registration provides higher usage limits and priority processing"),
        ],
        critical_dates=[mark("Deadlines and effective dates appear here")],
        potential_concerns=[mark("Risks found in your document appear here")],
        plain_language_summary=mark(
            "To get actual summaries of your documents and avoid usage limits, please register "
            "for full access with higher processing limits and priority service."
        ),
        language="english",
        sample=True,
    )


def is_sample_record(record: SummaryRecord) -> bool:
    return record.sample or all(SAMPLE_MARKER in text for _, text in record.iter_fields())


def looks_like_placeholder(record: SummaryRecord) -> bool:
    """True when a genuine success response still carries the service's generic filler text."""

    for _, text in record.iter_fields():
        lowered = text.lower()
        if any(phrase in lowered for phrase in PLACEHOLDER_PHRASES):
            return True
    return False


@dataclass(frozen=True, slots=True)
class FailureDecision:
    info: ErrorInfo
    notice: Notice
    spawn_fallback: bool = False


def _user_message(info: ErrorInfo) -> str:
    if info.kind is ErrorKind.CAPACITY_LIMITED:
        return CAPACITY_ERROR_MESSAGE
    if info.kind is ErrorKind.AUTH:
        return SESSION_EXPIRED_MESSAGE
    if info.kind is ErrorKind.REMOTE_UNAVAILABLE and "try again" not in info.message.lower():
        return f"{info.message} {RETRY_SUGGESTION}".strip()
    return info.message or "Failed to process document"


def decide_failure(exc: BaseException, *, anonymous: bool) -> FailureDecision:
    """Classify a failed remote call and decide what the user sees.

    Only a capacity failure on the anonymous path gets a sample summary.
    """

    raw = classify_exception(exc)
    info = ErrorInfo(kind=raw.kind, message=_user_message(raw))
    spawn = anonymous and info.kind is ErrorKind.CAPACITY_LIMITED
    return FailureDecision(
        info=info,
        notice=Notice(level="error", message=info.message, code=info.kind.value),
        spawn_fallback=spawn,
    )
