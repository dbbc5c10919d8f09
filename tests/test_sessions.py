from __future__ import annotations

import asyncio
import json
import time

import httpx
import pytest

from docclient.application.fallback import (
    CAPACITY_ERROR_MESSAGE,
    FALLBACK_NOTICE_MESSAGE,
    PLACEHOLDER_WARNING,
    SAMPLE_MARKER,
    SESSION_EXPIRED_MESSAGE,
)
from docclient.application.sessions import (
    TRANSLATION_COMPLETE_MESSAGE,
    TRANSLATION_PARTIAL_MESSAGE,
    AnonymousSession,
    AuthenticatedSession,
    SubmitOutcome,
)
from docclient.application.translation import PhraseDictionary, TranslationCascade, TranslationMode
from docclient.core.errors import ErrorKind
from docclient.core.settings import CREDENTIAL_STORAGE_KEY
from docclient.core.storage import InMemoryKeyValueStore
from docclient.domain import AttemptStatus, SelectedDocument
from docclient.infrastructure import CredentialStore, DocumentServiceClient, TrialQuotaTracker

API_BASE = "http://api.test"
DOCUMENT = SelectedDocument(filename="lease.pdf", content=b"%PDF-1.4 lease", content_type="application/pdf")
HINDI_SUMMARY = {
    "documentOverview": "समझौता दो पक्षों के बीच है",
    "keyParties": ["ऐलिस", "बॉब"],
    "importantClauses": ["30 दिनों के भीतर भुगतान"],
    "criticalDates": ["1 जनवरी 2025"],
    "potentialConcerns": ["विलंब शुल्क अधिक है"],
    "plainLanguageSummary": "समय पर किराया दें",
}


class Recorder:
    """Mock transport handler that records requests and replies from a routing function."""

    def __init__(self, route):
        self.route = route
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.route(request)
        if asyncio.iscoroutine(response):
            response = await response
        return response

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


def _cascade(client: DocumentServiceClient) -> TranslationCascade:
    return TranslationCascade(client, PhraseDictionary({"agreement": "समझौता", "parties": "पक्षों"}))


def make_trial(route, *, store=None, limit=15, fallback_delay=0.0, max_upload_bytes=None):
    recorder = Recorder(route)
    client = DocumentServiceClient(API_BASE, transport=httpx.MockTransport(recorder))
    quota = TrialQuotaTracker(store if store is not None else InMemoryKeyValueStore(), limit=limit)
    session = AnonymousSession(
        client,
        _cascade(client),
        quota,
        max_upload_bytes=max_upload_bytes,
        fallback_delay=fallback_delay,
    )
    return session, recorder


def make_account(route, *, token=None, store=None):
    recorder = Recorder(route)
    store = store if store is not None else InMemoryKeyValueStore()
    credentials = CredentialStore(store)
    client = DocumentServiceClient(API_BASE, credentials=credentials, transport=httpx.MockTransport(recorder))
    if token is not None:
        credentials.set_credential(token)
    session = AuthenticatedSession(client, _cascade(client), credentials, fallback_delay=0.0)
    return session, recorder, store


def _summary_reply(payload, **extra):
    return httpx.Response(200, json={"success": True, "summary": payload, **extra})


def _codes(session) -> list[str | None]:
    return [notice.code for notice in session.drain_notices()]


# ----------------------------------------------------------------------
# anonymous flow
# ----------------------------------------------------------------------
def test_successful_submit_consumes_one_trial(summary_payload):
    session, recorder = make_trial(lambda request: _summary_reply(summary_payload))
    assert session.select_document(DOCUMENT)

    outcome = asyncio.run(session.submit())

    assert outcome is SubmitOutcome.RESULT
    assert session.remaining() == 14
    assert session.state.status is AttemptStatus.RESULT
    assert session.state.displayed.key_parties == ["Alice", "Bob"]
    assert recorder.paths == ["/api/free-trial/upload"]
    assert _codes(session) == ["analyzed"]


def test_failed_submit_does_not_consume_a_trial():
    session, _ = make_trial(lambda request: httpx.Response(502, json={"message": "Bad gateway"}))
    session.select_document(DOCUMENT)

    async def scenario():
        outcome = await session.submit()
        await session.settle()
        return outcome

    assert asyncio.run(scenario()) is SubmitOutcome.FAILED
    assert session.remaining() == 15
    assert session.state.status is AttemptStatus.FAILED
    assert session.state.displayed is None
    assert session.state.fallback is False
    assert session.state.can_submit()


def test_exhausted_quota_refuses_without_remote_call(summary_payload):
    store = InMemoryKeyValueStore()
    session, recorder = make_trial(lambda request: _summary_reply(summary_payload), store=store, limit=1)
    session.quota.consume()
    session.select_document(DOCUMENT)

    outcome = asyncio.run(session.submit())

    assert outcome is SubmitOutcome.REGISTRATION_REQUIRED
    assert recorder.requests == []
    assert session.state.status is AttemptStatus.SELECTING
    assert session.snapshot()["registration_required"] is True


def test_capacity_error_then_sample_summary_without_consuming_quota():
    session, _ = make_trial(
        lambda request: httpx.Response(500, json={"message": "Upstream rate limit exceeded"}),
        fallback_delay=0.01,
    )
    session.select_document(DOCUMENT)

    async def scenario():
        outcome = await session.submit()
        before = session.state
        notices_before = session.drain_notices()
        await session.settle()
        return outcome, before, notices_before

    outcome, before, notices_before = asyncio.run(scenario())

    assert outcome is SubmitOutcome.FAILED
    assert before.displayed is None
    assert [(notice.level, notice.message) for notice in notices_before] == [("error", CAPACITY_ERROR_MESSAGE)]

    state = session.state
    assert state.status is AttemptStatus.FAILED
    assert state.fallback is True
    assert all(SAMPLE_MARKER in text for _, text in state.displayed.iter_fields())
    assert [notice.message for notice in session.drain_notices()] == [FALLBACK_NOTICE_MESSAGE]
    assert session.remaining() == 15
    assert session.snapshot()["sample"] is True


def test_reset_during_fallback_delay_drops_the_sample():
    session, _ = make_trial(
        lambda request: httpx.Response(429, json={"message": "Too Many Requests"}),
        fallback_delay=0.01,
    )
    session.select_document(DOCUMENT)

    async def scenario():
        await session.submit()
        session.reset()
        await session.settle()

    asyncio.run(scenario())

    assert session.state.status is AttemptStatus.IDLE
    assert session.state.displayed is None
    assert FALLBACK_NOTICE_MESSAGE not in [notice.message for notice in session.drain_notices()]


def test_second_submit_while_in_flight_is_ignored(summary_payload):
    gate: dict[str, asyncio.Event] = {}

    async def route(request):
        await gate["open"].wait()
        return _summary_reply(summary_payload)

    session, recorder = make_trial(route)
    session.select_document(DOCUMENT)

    async def scenario():
        gate["open"] = asyncio.Event()
        first = asyncio.create_task(session.submit())
        while not session.state.in_flight:
            await asyncio.sleep(0)
        second = await session.submit()
        gate["open"].set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert second is SubmitOutcome.IGNORED
    assert first is SubmitOutcome.RESULT
    assert len(recorder.requests) == 1
    assert session.remaining() == 14


def test_late_result_after_reset_is_dropped(summary_payload):
    gate: dict[str, asyncio.Event] = {}

    async def route(request):
        await gate["open"].wait()
        return _summary_reply(summary_payload)

    session, _ = make_trial(route)
    session.select_document(DOCUMENT)

    async def scenario():
        gate["open"] = asyncio.Event()
        pending = asyncio.create_task(session.submit())
        while not session.state.in_flight:
            await asyncio.sleep(0)
        session.reset()
        gate["open"].set()
        return await pending

    assert asyncio.run(scenario()) is SubmitOutcome.SUPERSEDED
    assert session.state.status is AttemptStatus.IDLE
    assert session.state.displayed is None
    # the remote call did succeed, so the trial is still counted
    assert session.remaining() == 14


@pytest.mark.parametrize(
    ("document", "max_bytes", "expected"),
    [
        (SelectedDocument(filename="setup.exe", content=b"MZ", content_type="application/octet-stream"), None, "Unsupported file type"),
        (SelectedDocument(filename="lease.pdf", content=b"x" * 11, content_type="application/pdf"), 10, "too large"),
    ],
)
def test_invalid_documents_never_reach_the_service(summary_payload, document, max_bytes, expected):
    session, recorder = make_trial(lambda request: _summary_reply(summary_payload), max_upload_bytes=max_bytes)

    assert session.select_document(document) is False
    assert expected in session.state.error.message
    assert asyncio.run(session.submit()) is SubmitOutcome.NO_DOCUMENT
    assert recorder.requests == []
    assert session.remaining() == 15


def test_reset_clears_selection_result_error_and_cache(summary_payload):
    session, _ = make_trial(lambda request: _summary_reply(summary_payload))
    session.select_document(DOCUMENT)
    session.set_translation_mode(TranslationMode.LOCAL_DICTIONARY)

    async def scenario():
        await session.submit()
        await session.show_translated()

    asyncio.run(scenario())
    assert len(session.cache) == 1

    fresh = session.reset()

    assert fresh.status is AttemptStatus.IDLE
    assert fresh.selected_document is None
    assert fresh.displayed is None
    assert fresh.error is None
    assert len(session.cache) == 0


def test_translation_is_cached_until_mode_changes(summary_payload):
    term_calls: list[str] = []

    def route(request):
        if request.url.path == "/api/translate/term":
            term_calls.append(request.url.path)
            return httpx.Response(200, json={"success": True, "translatedTerm": json.dumps(HINDI_SUMMARY, ensure_ascii=False)})
        return _summary_reply(summary_payload)

    session, _ = make_trial(route)
    session.select_document(DOCUMENT)

    async def scenario():
        await session.submit()
        first = await session.toggle_language()
        back = await session.toggle_language()
        again = await session.toggle_language()
        return first, back, again

    first, back, again = asyncio.run(scenario())

    assert first.language == "hindi"
    assert back.language == "english"
    assert again == first
    assert len(term_calls) == 1
    assert session.snapshot()["showing_language"] == "hindi"

    assert session.set_translation_mode(TranslationMode.LOCAL_DICTIONARY)
    assert session.state.showing_translation is False
    assert len(session.cache) == 0

    dictionary = asyncio.run(session.show_translated())
    assert dictionary.tier is TranslationMode.LOCAL_DICTIONARY
    assert len(term_calls) == 1
    assert session.state.displayed.document_overview == "The समझौता is between two पक्षों"
    codes = _codes(session)
    assert codes[-1] == "translation_partial"


def test_translation_notices_reflect_completeness(summary_payload):
    def route(request):
        if request.url.path == "/api/translate/term":
            return httpx.Response(200, json={"success": True, "translatedTerm": json.dumps(HINDI_SUMMARY, ensure_ascii=False)})
        return _summary_reply(summary_payload)

    session, _ = make_trial(route)
    session.select_document(DOCUMENT)

    async def scenario():
        await session.submit()
        session.drain_notices()
        return await session.show_translated()

    result = asyncio.run(scenario())

    assert not result.partial
    assert [notice.message for notice in session.drain_notices()] == [TRANSLATION_COMPLETE_MESSAGE]
    assert TRANSLATION_PARTIAL_MESSAGE != TRANSLATION_COMPLETE_MESSAGE


def test_hindi_submission_yields_hindi_result_and_no_translation():
    languages: list[str | None] = []

    def route(request):
        languages.append(request.url.params.get("language"))
        return _summary_reply(HINDI_SUMMARY, language="hindi")

    session, recorder = make_trial(route)
    session.select_document(DOCUMENT)

    async def scenario():
        await session.submit(language="hindi")
        return await session.show_translated()

    assert asyncio.run(scenario()) is None
    assert languages == ["hindi"]
    assert session.state.original.language == "hindi"
    assert session.snapshot()["showing_language"] == "hindi"
    assert len(recorder.requests) == 1


def test_generic_placeholder_summary_raises_a_warning(summary_payload):
    payload = dict(summary_payload, importantClauses=["This is a sample key point"])
    session, _ = make_trial(lambda request: _summary_reply(payload))
    session.select_document(DOCUMENT)

    assert asyncio.run(session.submit()) is SubmitOutcome.RESULT
    notices = session.drain_notices()
    assert [(notice.level, notice.message) for notice in notices] == [("warning", PLACEHOLDER_WARNING)]


def test_hindi_text_without_language_tag_is_recognised():
    session, _ = make_trial(lambda request: _summary_reply(HINDI_SUMMARY))
    session.select_document(DOCUMENT)

    asyncio.run(session.submit(language="hindi"))

    assert session.state.original.language == "hindi"


# ----------------------------------------------------------------------
# authenticated flow
# ----------------------------------------------------------------------
def _account_route(summary_payload, *, summarize=None):
    def route(request):
        path = request.url.path
        if path == "/api/documents/upload":
            return httpx.Response(201, json={"success": True, "document": {"_id": "doc-1", "originalName": "lease.pdf"}})
        if path.endswith("/summarize"):
            if summarize is not None:
                return summarize(request)
            return _summary_reply(summary_payload)
        return httpx.Response(404, json={"message": "Not found"})

    return route


def test_authenticated_upload_then_summarize(token_factory, summary_payload):
    token = token_factory(time.time() + 3600)
    session, recorder, _ = make_account(_account_route(summary_payload), token=token)
    session.select_document(DOCUMENT)

    outcome = asyncio.run(session.submit())

    assert outcome is SubmitOutcome.RESULT
    assert recorder.paths == ["/api/documents/upload", "/api/documents/doc-1/summarize"]
    assert all(request.headers["Authorization"] == f"Bearer {token}" for request in recorder.requests)
    assert session.state.document_id == "doc-1"
    assert _codes(session) == ["uploaded", "summarized"]


def test_expired_credential_requires_login_without_remote_call(token_factory, summary_payload):
    session, recorder, store = make_account(
        _account_route(summary_payload),
        token=token_factory(time.time() - 60),
    )
    session.select_document(DOCUMENT)

    outcome = asyncio.run(session.submit())

    assert outcome is SubmitOutcome.LOGIN_REQUIRED
    assert recorder.requests == []
    assert store.get(CREDENTIAL_STORAGE_KEY) is None
    assert [notice.message for notice in session.drain_notices()] == [SESSION_EXPIRED_MESSAGE]
    assert session.snapshot()["authenticated"] is False


def test_regenerate_keeps_previous_summary_visible(token_factory, summary_payload):
    gate: dict[str, asyncio.Event] = {}
    updated = dict(summary_payload, documentOverview="Updated overview")
    calls = {"summarize": 0}

    async def summarize(request):
        calls["summarize"] += 1
        if calls["summarize"] == 1:
            return _summary_reply(summary_payload)
        await gate["open"].wait()
        return _summary_reply(updated)

    session, recorder, _ = make_account(_account_route(summary_payload, summarize=summarize), token=token_factory(time.time() + 3600))
    session.select_document(DOCUMENT)

    async def scenario():
        gate["open"] = asyncio.Event()
        await session.submit()
        previous = session.state.displayed
        pending = asyncio.create_task(session.regenerate())
        while not session.state.in_flight:
            await asyncio.sleep(0)
        during = session.state
        second = await session.regenerate()
        gate["open"].set()
        return previous, during, second, await pending

    previous, during, second, outcome = asyncio.run(scenario())

    assert during.displayed == previous
    assert during.regenerating is True
    assert second is SubmitOutcome.IGNORED
    assert outcome is SubmitOutcome.RESULT
    assert session.state.displayed.document_overview == "Updated overview"
    assert recorder.paths.count("/api/documents/upload") == 1


def test_retry_after_summarize_failure_skips_upload(token_factory, summary_payload):
    calls = {"summarize": 0}

    def summarize(request):
        calls["summarize"] += 1
        if calls["summarize"] == 1:
            return httpx.Response(500, json={"message": "Internal server error"})
        return _summary_reply(summary_payload)

    session, recorder, _ = make_account(_account_route(summary_payload, summarize=summarize), token=token_factory(time.time() + 3600))
    session.select_document(DOCUMENT)

    async def scenario():
        first = await session.submit()
        failed = session.state
        second = await session.submit()
        return first, failed, second

    first, failed, second = asyncio.run(scenario())

    assert first is SubmitOutcome.FAILED
    assert failed.document_id == "doc-1"
    assert second is SubmitOutcome.RESULT
    assert recorder.paths == [
        "/api/documents/upload",
        "/api/documents/doc-1/summarize",
        "/api/documents/doc-1/summarize",
    ]


def test_authenticated_capacity_failure_shows_no_sample(token_factory, summary_payload):
    session, _, _ = make_account(
        _account_route(
            summary_payload,
            summarize=lambda request: httpx.Response(500, json={"message": "Failed to generate summary. Please try again."}),
        ),
        token=token_factory(time.time() + 3600),
    )
    session.select_document(DOCUMENT)

    async def scenario():
        outcome = await session.submit()
        await session.settle()
        return outcome

    assert asyncio.run(scenario()) is SubmitOutcome.FAILED
    assert session.state.fallback is False
    assert session.state.displayed is None
    assert session.state.error.message == CAPACITY_ERROR_MESSAGE


def test_rejected_credential_logs_the_user_out(token_factory, summary_payload):
    session, _, store = make_account(
        _account_route(
            summary_payload,
            summarize=lambda request: httpx.Response(401, json={"message": "Token is not valid"}),
        ),
        token=token_factory(time.time() + 3600),
    )
    session.select_document(DOCUMENT)

    assert asyncio.run(session.submit()) is SubmitOutcome.FAILED
    assert store.get(CREDENTIAL_STORAGE_KEY) is None
    assert session.authenticated is False


def test_open_document_then_translate_through_document_endpoint(token_factory, summary_payload):
    def route(request):
        path = request.url.path
        if path == "/api/documents/doc-7":
            return httpx.Response(200, json={"success": True, "document": {"_id": "doc-7", "summary": summary_payload}})
        if path == "/api/translate/documents/doc-7/translate":
            return httpx.Response(200, json={"success": True, "translatedSummary": HINDI_SUMMARY})
        return httpx.Response(404, json={"message": "Not found"})

    session, recorder, _ = make_account(route, token=token_factory(time.time() + 3600))

    async def scenario():
        opened = await session.open_document("doc-7")
        translated = await session.toggle_language()
        return opened, translated

    opened, translated = asyncio.run(scenario())

    assert opened is True
    assert session.state.document_id == "doc-7"
    assert translated.language == "hindi"
    assert translated.key_parties == ["ऐलिस", "बॉब"]
    assert recorder.paths == ["/api/documents/doc-7", "/api/translate/documents/doc-7/translate"]


def test_open_missing_document_reports_not_found(token_factory):
    session, _, _ = make_account(
        lambda request: httpx.Response(404, json={"message": "Document not found"}),
        token=token_factory(time.time() + 3600),
    )

    assert asyncio.run(session.open_document("missing")) is False
    assert _codes(session) == ["not_found"]


def test_login_persists_credential(token_factory):
    token = token_factory(time.time() + 3600)

    def route(request):
        return httpx.Response(200, json={"success": True, "token": token, "user": {"name": "Asha"}})

    session, _, store = make_account(route)

    assert asyncio.run(session.login("asha@example.com", "secret")) is True
    assert store.get(CREDENTIAL_STORAGE_KEY) == token
    assert session.authenticated is True
    assert session.snapshot()["user"] == {"name": "Asha"}

    session.logout()
    assert store.get(CREDENTIAL_STORAGE_KEY) is None
    assert session.authenticated is False


def test_bare_unauthorized_summarize_logs_the_user_out(token_factory, summary_payload):
    session, _, store = make_account(
        _account_route(summary_payload, summarize=lambda request: httpx.Response(401)),
        token=token_factory(time.time() + 3600),
    )
    session.select_document(DOCUMENT)

    assert asyncio.run(session.submit()) is SubmitOutcome.FAILED
    assert session.state.error.kind is ErrorKind.AUTH
    assert store.get(CREDENTIAL_STORAGE_KEY) is None
    assert session.authenticated is False


def test_translation_in_flight_refuses_toggle_and_mode_change(summary_payload):
    gate: dict[str, asyncio.Event] = {}
    term_calls: list[str] = []

    async def route(request):
        if request.url.path == "/api/translate/term":
            term_calls.append(request.url.path)
            await gate["open"].wait()
            return httpx.Response(200, json={"success": True, "translatedTerm": json.dumps(HINDI_SUMMARY, ensure_ascii=False)})
        return _summary_reply(summary_payload)

    session, _ = make_trial(route)
    session.select_document(DOCUMENT)

    async def scenario():
        gate["open"] = asyncio.Event()
        await session.submit()
        pending = asyncio.create_task(session.toggle_language())
        while not session.translation_loading:
            await asyncio.sleep(0)
        second_toggle = await session.toggle_language()
        second_show = await session.show_translated()
        mode_changed = session.set_translation_mode(TranslationMode.LOCAL_DICTIONARY)
        gate["open"].set()
        return second_toggle, second_show, mode_changed, await pending

    second_toggle, second_show, mode_changed, first = asyncio.run(scenario())

    assert second_toggle is None
    assert second_show is None
    assert mode_changed is False
    assert session.translation_mode is TranslationMode.REMOTE_BATCH
    assert first.language == "hindi"
    assert session.state.displayed == first
    assert session.translation_loading is False
    assert len(term_calls) == 1
    assert len(session.cache) == 1


def test_restore_loads_user_for_persisted_credential(token_factory):
    token = token_factory(time.time() + 3600)
    seen: list[str | None] = []

    def route(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={"success": True, "user": {"name": "Asha"}})

    session, recorder, _ = make_account(route, store=InMemoryKeyValueStore({CREDENTIAL_STORAGE_KEY: token}))

    assert asyncio.run(session.restore()) is True
    assert recorder.paths == ["/api/auth/user"]
    assert seen == [f"Bearer {token}"]
    snapshot = session.snapshot()
    assert snapshot["authenticated"] is True
    assert snapshot["user"] == {"name": "Asha"}


def test_restore_clears_a_revoked_credential(token_factory):
    token = token_factory(time.time() + 3600)
    session, _, store = make_account(
        lambda request: httpx.Response(401, json={"message": "Token is not valid"}),
        store=InMemoryKeyValueStore({CREDENTIAL_STORAGE_KEY: token}),
    )

    assert asyncio.run(session.restore()) is False
    assert store.get(CREDENTIAL_STORAGE_KEY) is None
    assert session.user is None
    assert session.authenticated is False


def test_restore_skips_the_service_for_an_expired_credential(token_factory):
    session, recorder, store = make_account(
        lambda request: httpx.Response(200, json={"success": True, "user": {"name": "Asha"}}),
        store=InMemoryKeyValueStore({CREDENTIAL_STORAGE_KEY: token_factory(time.time() - 60)}),
    )

    assert asyncio.run(session.restore()) is False
    assert recorder.requests == []
    assert store.get(CREDENTIAL_STORAGE_KEY) is None
