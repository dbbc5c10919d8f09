"""Session controllers that drive one analysis attempt at a time.

The controllers own all I/O: they ask the credential store or quota tracker
for permission, call the remote service, and feed the outcome to the pure
``reduce`` function.  User-visible results are queued as :class:`Notice`
values for the presentation layer to drain.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from docclient.application.fallback import (
    FALLBACK_NOTICE_MESSAGE,
    PLACEHOLDER_WARNING,
    SESSION_EXPIRED_MESSAGE,
    build_sample_summary,
    decide_failure,
    looks_like_placeholder,
)
from docclient.application.translation import (
    TranslationCache,
    TranslationCascade,
    TranslationMode,
    TranslationResult,
)
from docclient.core.errors import ClientError, DocumentValidationError, ErrorKind, ParseError
from docclient.core.schema import SummaryRecord
from docclient.core.scripts import contains_devanagari
from docclient.core.settings import Settings
from docclient.core.storage import InMemoryKeyValueStore, JsonFileKeyValueStore, KeyValueStore
from docclient.core.validation import validate_document
from docclient.domain import AnalysisAttempt, AttemptStatus, Notice, SelectedDocument, reduce
from docclient.domain.attempts import (
    AnalysisFailed,
    AnalysisSucceeded,
    DocumentOpened,
    DocumentSelected,
    Event,
    FallbackDisplayed,
    OriginalShown,
    RegenerateStarted,
    Reset,
    SelectionRejected,
    SubmitStarted,
    TranslationShown,
)
from docclient.domain.notices import NoticeLevel
from docclient.infrastructure import CredentialStore, DocumentServiceClient, TrialQuotaTracker

logger = logging.getLogger(__name__)

TRANSLATION_COMPLETE_MESSAGE = "सारांश का 100% हिंदी शब्दों में सफलतापूर्वक अनुवाद किया गया!"
TRANSLATION_PARTIAL_MESSAGE = (
    "हिंदी अनुवाद पूरा हुआ, लेकिन कुछ अंग्रेजी शब्द अभी भी बाकी हैं। हम अपनी प्रणाली को निरंतर सुधार रहे हैं।"
)
NO_DOCUMENT_MESSAGE = "Please select a document to upload."
TRIALS_EXHAUSTED_MESSAGE = "You have used all your free trials. Please register for full access."


class SubmitOutcome(str, Enum):
    RESULT = "result"
    FAILED = "failed"
    IGNORED = "ignored"
    SUPERSEDED = "superseded"
    NO_DOCUMENT = "no_document"
    REGISTRATION_REQUIRED = "registration_required"
    LOGIN_REQUIRED = "login_required"


class AnalysisSession:
    """Shared behaviour of the anonymous and authenticated controllers."""

    anonymous: bool = False

    def __init__(
        self,
        client: DocumentServiceClient,
        cascade: TranslationCascade,
        *,
        max_upload_bytes: int | None = None,
        fallback_delay: float = 1.5,
    ) -> None:
        self._client = client
        self._cascade = cascade
        self._max_upload_bytes = max_upload_bytes
        self._fallback_delay = fallback_delay
        self._attempt = AnalysisAttempt()
        self._notices: list[Notice] = []
        self._cache = TranslationCache()
        self._mode = TranslationMode.REMOTE_BATCH
        self._translation_loading = False
        self._background: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # state & notices
    # ------------------------------------------------------------------
    @property
    def state(self) -> AnalysisAttempt:
        return self._attempt

    @property
    def translation_mode(self) -> TranslationMode:
        return self._mode

    @property
    def translation_loading(self) -> bool:
        return self._translation_loading

    @property
    def cache(self) -> TranslationCache:
        return self._cache

    def _dispatch(self, event: Event) -> AnalysisAttempt:
        self._attempt = reduce(self._attempt, event)
        return self._attempt

    def _notify(self, level: NoticeLevel, message: str, code: str | None = None) -> None:
        self._notices.append(Notice(level=level, message=message, code=code))

    @property
    def notices(self) -> list[Notice]:
        return list(self._notices)

    def drain_notices(self) -> list[Notice]:
        drained, self._notices = self._notices, []
        return drained

    # ------------------------------------------------------------------
    # selection & reset
    # ------------------------------------------------------------------
    def select_document(self, document: SelectedDocument) -> bool:
        state = self._attempt
        if state.status not in (AttemptStatus.IDLE, AttemptStatus.SELECTING):
            self._notify("info", "Start a new analysis before selecting another document.", "reset_required")
            return False
        try:
            validate_document(
                document.filename,
                document.size,
                document.content_type,
                max_bytes=self._max_upload_bytes,
            )
        except DocumentValidationError as exc:
            self._dispatch(SelectionRejected(exc.info()))
            self._notify("error", exc.message, exc.kind.value)
            return False
        self._dispatch(DocumentSelected(document))
        return True

    def reset(self) -> AnalysisAttempt:
        """Drop the current attempt; a pending remote result for it is ignored."""

        state = self._dispatch(Reset())
        self._cache.clear()
        self._notify("info", "Ready for a new document!", "reset")
        return state

    # ------------------------------------------------------------------
    # submission helpers
    # ------------------------------------------------------------------
    def _check_submittable(self) -> SubmitOutcome | None:
        state = self._attempt
        if state.in_flight:
            return SubmitOutcome.IGNORED
        if state.can_submit():
            return None
        if state.status in (AttemptStatus.IDLE, AttemptStatus.SELECTING):
            self._dispatch(SelectionRejected(DocumentValidationError(NO_DOCUMENT_MESSAGE).info()))
            self._notify("error", NO_DOCUMENT_MESSAGE, ErrorKind.VALIDATION.value)
            return SubmitOutcome.NO_DOCUMENT
        return SubmitOutcome.IGNORED

    def _begin(self, event: SubmitStarted | RegenerateStarted) -> bool:
        before = self._attempt
        after = self._dispatch(event)
        if after is before:
            return False
        self._cache.clear()
        return True

    def _is_current(self, generation: int) -> bool:
        current = self._attempt
        if current.generation != generation or not current.in_flight:
            logger.info("dropping late result for superseded attempt %s", generation)
            return False
        return True

    def _fail(self, generation: int, exc: BaseException, *, document_id: str | None = None) -> SubmitOutcome:
        decision = decide_failure(exc, anonymous=self.anonymous)
        logger.warning("analysis attempt %s failed (%s): %s", generation, decision.info.kind.value, exc)
        if not self._is_current(generation):
            return SubmitOutcome.SUPERSEDED

        self._dispatch(AnalysisFailed(generation, decision.info, document_id=document_id))
        self._notices.append(decision.notice)
        self._on_failure(decision.info.kind)
        if decision.spawn_fallback:
            self._schedule_fallback(generation)
        return SubmitOutcome.FAILED

    def _on_failure(self, kind: ErrorKind) -> None:
        """Hook for variant-specific side effects of a classified failure."""

    def _schedule_fallback(self, generation: int) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver_fallback(generation))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _deliver_fallback(self, generation: int) -> None:
        # keep the sample from landing on top of the error notice
        await asyncio.sleep(self._fallback_delay)
        before = self._attempt
        after = self._dispatch(FallbackDisplayed(generation, build_sample_summary()))
        if after is not before:
            self._notify("info", FALLBACK_NOTICE_MESSAGE, "sample_summary")

    async def settle(self) -> None:
        """Wait for scheduled background work such as a pending sample summary."""

        while self._background:
            await asyncio.gather(*list(self._background))

    # ------------------------------------------------------------------
    # translation
    # ------------------------------------------------------------------
    def _translation_document_id(self, state: AnalysisAttempt) -> str | None:
        return None

    def set_translation_mode(self, mode: TranslationMode | str) -> bool:
        """Switch between remote and dictionary translation.

        Cached translations are discarded and a translated view reverts to the
        original. Refused while a translation is running.
        """

        mode = TranslationMode(mode)
        if self._translation_loading:
            return False
        if mode is self._mode:
            return True
        self._mode = mode
        self._cache.clear()
        if self._attempt.showing_translation:
            self._dispatch(OriginalShown(self._attempt.generation))
        label = "Dictionary" if mode is TranslationMode.LOCAL_DICTIONARY else "AI"
        self._notify("info", f"Translation mode set to {label}", "translation_mode")
        return True

    def show_original(self) -> SummaryRecord | None:
        state = self._attempt
        if state.original is None:
            return None
        self._dispatch(OriginalShown(state.generation))
        if state.original.language == "hindi":
            self._notify(
                "info",
                "This summary was generated in Hindi. Submit the document again in English to read it in English.",
                "original_language",
            )
        else:
            self._notify("info", "Showing summary in English", "original_language")
        return state.original

    async def show_translated(self) -> TranslationResult | None:
        state = self._attempt
        if self._translation_loading or state.in_flight:
            return None
        original = state.original
        if original is None:
            self._notify("error", "No summary available to translate", ErrorKind.VALIDATION.value)
            return None
        if original.language == "hindi":
            self._dispatch(OriginalShown(state.generation))
            self._notify("info", "The summary is already in Hindi", "already_translated")
            return None

        generation = state.generation
        mode = self._mode
        cached = self._cache.get(generation, mode)
        if cached is not None:
            self._dispatch(TranslationShown(generation, cached.record))
            self._announce_translation(cached)
            return cached

        self._translation_loading = True
        try:
            result = await self._cascade.translate(
                original,
                mode,
                document_id=self._translation_document_id(state),
            )
        except ClientError as exc:
            logger.warning("translation failed (%s): %s", exc.kind.value, exc.message)
            self._notify("error", f"Failed to translate summary: {exc.message}", exc.kind.value)
            return None
        finally:
            self._translation_loading = False

        if self._attempt.generation != generation or self._attempt.original is not original:
            logger.info("dropping translation for superseded attempt %s", generation)
            return None

        self._cache.put(generation, mode, result)
        self._dispatch(TranslationShown(generation, result.record))
        self._announce_translation(result)
        return result

    def _announce_translation(self, result: TranslationResult) -> None:
        if result.partial:
            self._notify("warning", TRANSLATION_PARTIAL_MESSAGE, "translation_partial")
        else:
            self._notify("success", TRANSLATION_COMPLETE_MESSAGE, "translation_complete")

    async def toggle_language(self) -> SummaryRecord | None:
        if self._translation_loading:
            return None
        if self._attempt.showing_translation:
            return self.show_original()
        result = await self.show_translated()
        return result.record if result is not None else None

    # ------------------------------------------------------------------
    # presentation
    # ------------------------------------------------------------------
    def snapshot(self, *, drain: bool = True) -> dict[str, Any]:
        state = self._attempt
        displayed = state.displayed
        showing = "english"
        if displayed is not None and (state.showing_translation or displayed.language == "hindi"):
            showing = "hindi"
        document = state.selected_document
        return {
            "generation": state.generation,
            "status": state.status.value,
            "document": (
                {"filename": document.filename, "size": document.size, "content_type": document.content_type}
                if document is not None
                else None
            ),
            "document_id": state.document_id,
            "summary": displayed.to_wire() if displayed is not None else None,
            "showing_language": showing,
            "sample": state.fallback,
            "regenerating": state.regenerating,
            "error": {"kind": state.error.kind.value, "message": state.error.message} if state.error else None,
            "translation_loading": self._translation_loading,
            "translation_mode": self._mode.value,
            "notices": [
                {"level": notice.level, "message": notice.message, "code": notice.code}
                for notice in (self.drain_notices() if drain else self.notices)
            ],
        }


class AnonymousSession(AnalysisSession):
    """Free-trial flow gated by the device-local quota."""

    anonymous = True

    def __init__(
        self,
        client: DocumentServiceClient,
        cascade: TranslationCascade,
        quota: TrialQuotaTracker,
        *,
        max_upload_bytes: int | None = None,
        fallback_delay: float = 1.5,
    ) -> None:
        super().__init__(client, cascade, max_upload_bytes=max_upload_bytes, fallback_delay=fallback_delay)
        self._quota = quota

    @property
    def quota(self) -> TrialQuotaTracker:
        return self._quota

    def remaining(self) -> int:
        return self._quota.remaining()

    async def submit(self, language: str = "english") -> SubmitOutcome:
        refused = self._check_submittable()
        if refused is not None:
            return refused
        if self._quota.remaining() <= 0:
            self._notify("warning", TRIALS_EXHAUSTED_MESSAGE, SubmitOutcome.REGISTRATION_REQUIRED.value)
            return SubmitOutcome.REGISTRATION_REQUIRED

        state = self._attempt
        document = state.selected_document
        if document is None or not self._begin(SubmitStarted(state.generation)):
            return SubmitOutcome.IGNORED
        generation = state.generation
        language = "hindi" if language == "hindi" else "english"

        try:
            response = await self._client.analyze_anonymous(document, language)
        except ClientError as exc:
            return self._fail(generation, exc)
        except Exception as exc:
            self._fail(generation, exc)
            raise

        # success confirmed: count the trial before anything reflects it
        remaining = self._quota.consume()
        logger.info("free trial consumed; %s remaining", remaining)

        record = response.summary
        hindi = response.language == "hindi" or (
            response.language is None and language == "hindi" and contains_devanagari(record.document_overview)
        )
        if hindi and record.language != "hindi":
            record = record.model_copy(update={"language": "hindi"})

        if not self._is_current(generation):
            return SubmitOutcome.SUPERSEDED
        self._dispatch(AnalysisSucceeded(generation, record))
        if looks_like_placeholder(record):
            self._notify("warning", PLACEHOLDER_WARNING, "generic_summary")
        else:
            self._notify("success", "Document successfully analyzed!", "analyzed")
        return SubmitOutcome.RESULT

    def snapshot(self, *, drain: bool = True) -> dict[str, Any]:
        data = super().snapshot(drain=drain)
        remaining = self._quota.remaining()
        data.update(
            {
                "remaining_trials": remaining,
                "trial_limit": self._quota.limit,
                "registration_required": remaining <= 0,
            }
        )
        return data


class AuthenticatedSession(AnalysisSession):
    """Registered-user flow: upload, summarize, regenerate and translate documents."""

    anonymous = False

    def __init__(
        self,
        client: DocumentServiceClient,
        cascade: TranslationCascade,
        credentials: CredentialStore,
        *,
        max_upload_bytes: int | None = None,
        fallback_delay: float = 1.5,
    ) -> None:
        super().__init__(client, cascade, max_upload_bytes=max_upload_bytes, fallback_delay=fallback_delay)
        self._credentials = credentials
        self.user: dict[str, Any] | None = None

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    @property
    def authenticated(self) -> bool:
        return self._credentials.is_valid()

    def _translation_document_id(self, state: AnalysisAttempt) -> str | None:
        return state.document_id

    def _on_failure(self, kind: ErrorKind) -> None:
        if kind is ErrorKind.AUTH:
            self._credentials.clear()
            self.user = None

    def _require_credential(self) -> bool:
        if self._credentials.is_valid():
            return True
        self.user = None
        self._notify("error", SESSION_EXPIRED_MESSAGE, ErrorKind.AUTH.value)
        return False

    # ------------------------------------------------------------------
    # credentials
    # ------------------------------------------------------------------
    async def login(self, email: str, password: str) -> bool:
        try:
            token, user = await self._client.login(email, password)
        except ClientError as exc:
            logger.warning("login failed (%s)", exc.kind.value)
            self._notify("error", exc.message, exc.kind.value)
            return False
        self._credentials.set_credential(token)
        if not self._credentials.is_valid():
            self._notify("error", "Login failed. The issued session is not valid.", ErrorKind.AUTH.value)
            return False
        self.user = user
        self._notify("success", "Logged in successfully", "login")
        return True

    async def restore(self) -> bool:
        """Re-check a persisted credential with the service and load its user.

        Any failure, including an unreachable service, logs the user out.
        """

        if not self._credentials.restore():
            self.user = None
            return False
        try:
            user = await self._client.get_current_user()
        except ClientError as exc:
            logger.warning("persisted credential rejected (%s); logging out", exc.kind.value)
            self._credentials.clear()
            self.user = None
            return False
        self.user = user
        return True

    def logout(self) -> None:
        self._credentials.clear()
        self.user = None
        self._dispatch(Reset())
        self._cache.clear()
        self._notify("info", "You have been logged out", "logout")

    # ------------------------------------------------------------------
    # documents
    # ------------------------------------------------------------------
    async def open_document(self, document_id: str) -> bool:
        if self._attempt.in_flight:
            return False
        if not self._require_credential():
            return False
        self._dispatch(Reset())
        self._cache.clear()
        generation = self._attempt.generation
        try:
            document = await self._client.get_document(document_id)
        except ClientError as exc:
            decision = decide_failure(exc, anonymous=False)
            self._notices.append(decision.notice)
            self._on_failure(decision.info.kind)
            return False
        if self._attempt.generation != generation:
            return False
        self._dispatch(DocumentOpened(generation, document.id, document.summary))
        return True

    async def submit(self) -> SubmitOutcome:
        refused = self._check_submittable()
        if refused is not None:
            return refused
        if not self._require_credential():
            return SubmitOutcome.LOGIN_REQUIRED

        state = self._attempt
        if not self._begin(SubmitStarted(state.generation)):
            return SubmitOutcome.IGNORED
        generation = state.generation
        document_id = state.document_id

        try:
            if document_id is None:
                if state.selected_document is None:
                    raise DocumentValidationError(NO_DOCUMENT_MESSAGE)
                uploaded = await self._client.upload_document(state.selected_document)
                document_id = uploaded.id
                if self._attempt.generation == generation:
                    self._notify("success", "Document uploaded successfully!", "uploaded")
            document = await self._client.summarize_document(document_id)
            if document.summary is None:
                raise ParseError("Summary generation returned no summary")
        except ClientError as exc:
            return self._fail(generation, exc, document_id=document_id)
        except Exception as exc:
            self._fail(generation, exc, document_id=document_id)
            raise

        if not self._is_current(generation):
            return SubmitOutcome.SUPERSEDED
        self._dispatch(AnalysisSucceeded(generation, document.summary, document_id=document_id))
        self._notify("success", "Summary generated successfully!", "summarized")
        return SubmitOutcome.RESULT

    async def regenerate(self) -> SubmitOutcome:
        """Summarize the current document again, keeping the old summary visible meanwhile."""

        state = self._attempt
        document_id = state.document_id
        if state.in_flight or document_id is None or not state.can_regenerate():
            return SubmitOutcome.IGNORED
        if not self._require_credential():
            return SubmitOutcome.LOGIN_REQUIRED
        if not self._begin(RegenerateStarted(state.generation)):
            return SubmitOutcome.IGNORED

        generation = state.generation
        try:
            document = await self._client.summarize_document(document_id)
            if document.summary is None:
                raise ParseError("Summary generation returned no summary")
        except ClientError as exc:
            return self._fail(generation, exc)
        except Exception as exc:
            self._fail(generation, exc)
            raise

        if not self._is_current(generation):
            return SubmitOutcome.SUPERSEDED
        self._dispatch(AnalysisSucceeded(generation, document.summary, document_id=document_id))
        self._notify("success", "Summary generated successfully!", "summarized")
        return SubmitOutcome.RESULT

    def snapshot(self, *, drain: bool = True) -> dict[str, Any]:
        data = super().snapshot(drain=drain)
        data.update({"authenticated": self._credentials.is_valid(), "user": self.user})
        return data


# ----------------------------------------------------------------------
# wiring
# ----------------------------------------------------------------------
@dataclass(slots=True)
class SessionRegistry:
    trial: AnonymousSession
    account: AuthenticatedSession
    store: KeyValueStore
    clients: tuple[DocumentServiceClient, ...] = ()

    async def aclose(self) -> None:
        for client in self.clients:
            await client.aclose()


def build_sessions(
    settings: Settings,
    *,
    store: KeyValueStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SessionRegistry:
    """Assemble both session controllers from ``settings``."""

    if store is None:
        store = JsonFileKeyValueStore(settings.storage_path) if settings.storage_path else InMemoryKeyValueStore()

    trial_client = DocumentServiceClient(
        settings.api_base,
        timeout=settings.timeout,
        transport=transport,
    )
    credentials = CredentialStore(store)
    account_client = DocumentServiceClient(
        settings.api_base,
        credentials=credentials,
        timeout=settings.timeout,
        transport=transport,
    )
    credentials.restore()

    trial = AnonymousSession(
        trial_client,
        TranslationCascade(trial_client),
        TrialQuotaTracker(store, limit=settings.trial_limit),
        max_upload_bytes=settings.trial_max_upload_bytes,
        fallback_delay=settings.fallback_delay,
    )
    account = AuthenticatedSession(
        account_client,
        TranslationCascade(account_client),
        credentials,
        max_upload_bytes=settings.max_upload_bytes,
        fallback_delay=settings.fallback_delay,
    )
    return SessionRegistry(trial=trial, account=account, store=store, clients=(trial_client, account_client))


_registry: SessionRegistry | None = None


def configure_sessions(registry: SessionRegistry) -> None:
    """Install the session controllers used by the HTTP adapter."""

    global _registry
    _registry = registry


def _require_registry() -> SessionRegistry:
    if _registry is None:
        raise RuntimeError("sessions are not configured; call configure_sessions() first")
    return _registry


def get_trial_session() -> AnonymousSession:
    return _require_registry().trial


def get_account_session() -> AuthenticatedSession:
    return _require_registry().account
