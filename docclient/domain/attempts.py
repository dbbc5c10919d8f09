"""Analysis attempt state and its pure transition function.

``reduce(state, event)`` never performs I/O; the session controller decides
which event to dispatch and the reducer decides whether the attempt accepts
it.  Events stamped with a stale ``generation`` are dropped, which is how a
late result for a reset attempt is discarded.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path

from docclient.core.errors import ErrorInfo
from docclient.core.schema import SummaryRecord


class AttemptStatus(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    SUBMITTING = "submitting"
    RESULT = "result"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SelectedDocument:
    """A document picked by the user, held in memory until submission."""

    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: Path, content_type: str | None = None) -> "SelectedDocument":
        return cls(filename=path.name, content=path.read_bytes(), content_type=content_type)


@dataclass(frozen=True, slots=True)
class AnalysisAttempt:
    generation: int = 0
    status: AttemptStatus = AttemptStatus.IDLE
    selected_document: SelectedDocument | None = None
    document_id: str | None = None
    original: SummaryRecord | None = None
    displayed: SummaryRecord | None = None
    error: ErrorInfo | None = None
    showing_translation: bool = False
    regenerating: bool = False
    fallback: bool = False

    @property
    def result(self) -> SummaryRecord | None:
        return self.original

    @property
    def in_flight(self) -> bool:
        return self.status is AttemptStatus.SUBMITTING

    def can_submit(self) -> bool:
        if self.status is AttemptStatus.SELECTING:
            return True
        if self.status is AttemptStatus.FAILED and not self.fallback:
            return self.selected_document is not None or self.document_id is not None
        return False

    def can_regenerate(self) -> bool:
        return (
            self.status in (AttemptStatus.RESULT, AttemptStatus.FAILED)
            and self.document_id is not None
            and self.original is not None
            and not self.fallback
        )


# ----------------------------------------------------------------------
# events
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class DocumentSelected:
    document: SelectedDocument


@dataclass(frozen=True, slots=True)
class SelectionRejected:
    error: ErrorInfo


@dataclass(frozen=True, slots=True)
class DocumentOpened:
    generation: int
    document_id: str
    record: SummaryRecord | None = None


@dataclass(frozen=True, slots=True)
class SubmitStarted:
    generation: int


@dataclass(frozen=True, slots=True)
class RegenerateStarted:
    generation: int


@dataclass(frozen=True, slots=True)
class AnalysisSucceeded:
    generation: int
    record: SummaryRecord
    document_id: str | None = None


@dataclass(frozen=True, slots=True)
class AnalysisFailed:
    generation: int
    error: ErrorInfo
    document_id: str | None = None


@dataclass(frozen=True, slots=True)
class FallbackDisplayed:
    generation: int
    record: SummaryRecord


@dataclass(frozen=True, slots=True)
class TranslationShown:
    generation: int
    record: SummaryRecord


@dataclass(frozen=True, slots=True)
class OriginalShown:
    generation: int


@dataclass(frozen=True, slots=True)
class Reset:
    pass


Event = (
    DocumentSelected
    | SelectionRejected
    | DocumentOpened
    | SubmitStarted
    | RegenerateStarted
    | AnalysisSucceeded
    | AnalysisFailed
    | FallbackDisplayed
    | TranslationShown
    | OriginalShown
    | Reset
)

_GENERATION_EVENTS = (
    DocumentOpened,
    SubmitStarted,
    RegenerateStarted,
    AnalysisSucceeded,
    AnalysisFailed,
    FallbackDisplayed,
    TranslationShown,
    OriginalShown,
)


def reduce(state: AnalysisAttempt, event: Event) -> AnalysisAttempt:
    """Return the attempt that results from applying ``event`` to ``state``.

    Events that the current status does not accept return ``state`` unchanged.
    """

    if isinstance(event, Reset):
        return AnalysisAttempt(generation=state.generation + 1)

    if isinstance(event, _GENERATION_EVENTS) and event.generation != state.generation:
        return state

    if isinstance(event, DocumentSelected):
        if state.status not in (AttemptStatus.IDLE, AttemptStatus.SELECTING):
            return state
        return replace(
            state,
            status=AttemptStatus.SELECTING,
            selected_document=event.document,
            document_id=None,
            error=None,
        )

    if isinstance(event, SelectionRejected):
        if state.status not in (AttemptStatus.IDLE, AttemptStatus.SELECTING):
            return state
        return replace(state, error=event.error)

    if isinstance(event, DocumentOpened):
        if state.status is AttemptStatus.SUBMITTING:
            return state
        if event.record is None:
            return replace(
                state,
                status=AttemptStatus.SELECTING,
                selected_document=None,
                document_id=event.document_id,
                original=None,
                displayed=None,
                error=None,
                showing_translation=False,
                fallback=False,
            )
        return replace(
            state,
            status=AttemptStatus.RESULT,
            selected_document=None,
            document_id=event.document_id,
            original=event.record,
            displayed=event.record,
            error=None,
            showing_translation=False,
            fallback=False,
        )

    if isinstance(event, SubmitStarted):
        if not state.can_submit():
            return state
        return replace(
            state,
            status=AttemptStatus.SUBMITTING,
            original=None,
            displayed=None,
            error=None,
            showing_translation=False,
            regenerating=False,
            fallback=False,
        )

    if isinstance(event, RegenerateStarted):
        if not state.can_regenerate():
            return state
        # previous record stays on screen until the new one arrives
        return replace(state, status=AttemptStatus.SUBMITTING, error=None, regenerating=True)

    if isinstance(event, AnalysisSucceeded):
        if state.status is not AttemptStatus.SUBMITTING:
            return state
        return replace(
            state,
            status=AttemptStatus.RESULT,
            document_id=event.document_id or state.document_id,
            original=event.record,
            displayed=event.record,
            error=None,
            showing_translation=False,
            regenerating=False,
            fallback=False,
        )

    if isinstance(event, AnalysisFailed):
        if state.status is not AttemptStatus.SUBMITTING:
            return state
        return replace(
            state,
            status=AttemptStatus.FAILED,
            document_id=event.document_id or state.document_id,
            error=event.error,
            regenerating=False,
        )

    if isinstance(event, FallbackDisplayed):
        if state.status is not AttemptStatus.FAILED or state.original is not None:
            return state
        return replace(
            state,
            original=event.record,
            displayed=event.record,
            showing_translation=False,
            fallback=True,
        )

    if isinstance(event, TranslationShown):
        if state.original is None or state.status is AttemptStatus.SUBMITTING:
            return state
        return replace(state, displayed=event.record, showing_translation=True)

    if isinstance(event, OriginalShown):
        if state.original is None:
            return state
        return replace(state, displayed=state.original, showing_translation=False)

    return state
