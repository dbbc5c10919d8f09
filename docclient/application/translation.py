"""English -> Hindi translation of summary records with tiered fallback.

Tiers run in priority order and the first one that produces a record wins:

1. remote batch   - one structured payload, one round-trip
2. remote per field - one ``translate/term`` call per entry, order preserved
3. local dictionary - whole-word phrase substitution, always available

Every tier returns a :class:`TierOutcome` instead of raising, so the chain is
a flat loop rather than nested handlers.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol

import yaml

from docclient.core.errors import ClientError, ErrorInfo, ErrorKind, ParseError, RemoteUnavailableError
from docclient.core.schema import FIELD_ORDER, LIST_FIELDS, SummaryRecord
from docclient.core.scripts import has_residual_latin
from docclient.infrastructure import DocumentServiceClient

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
TARGET_LANGUAGE = "hindi"


class TranslationMode(str, Enum):
    REMOTE_BATCH = "remote_batch"
    REMOTE_PER_FIELD = "remote_per_field"
    LOCAL_DICTIONARY = "local_dictionary"


@dataclass(frozen=True, slots=True)
class TierOutcome:
    tier: TranslationMode
    record: SummaryRecord | None = None
    error: ErrorInfo | None = None

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass(frozen=True, slots=True)
class TranslationResult:
    record: SummaryRecord
    residual_latin_fields: list[str]
    tier: TranslationMode | None
    outcomes: list[TierOutcome] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.residual_latin_fields)


# ----------------------------------------------------------------------
# local dictionary
# ----------------------------------------------------------------------
def _load_dictionary_entries() -> dict[str, str]:
    path = CONFIG_DIR / "hindi_dictionary.yaml"
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    entries = data.get("entries") or {}
    return {str(key).strip().lower(): str(value) for key, value in entries.items() if str(key).strip()}


class PhraseDictionary:
    """Whole-word, case-insensitive phrase substitution table."""

    def __init__(self, entries: dict[str, str]) -> None:
        self._entries = {key.lower(): value for key, value in entries.items()}
        phrases = sorted(self._entries, key=len, reverse=True)
        if phrases:
            alternation = "|".join(re.escape(phrase) for phrase in phrases)
            self._pattern: re.Pattern[str] | None = re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)
        else:
            self._pattern = None

    @classmethod
    def default(cls) -> "PhraseDictionary":
        return cls(_load_dictionary_entries())

    def __len__(self) -> int:
        return len(self._entries)

    def substitute(self, text: str) -> str:
        if not text or self._pattern is None:
            return text
        return self._pattern.sub(lambda match: self._entries[match.group(0).lower()], text)

    def translate_record(self, original: SummaryRecord) -> SummaryRecord:
        return _map_record(original, self.substitute)


def _map_record(original: SummaryRecord, func: Callable[[str], str]) -> SummaryRecord:
    update: dict[str, Any] = {}
    for name in FIELD_ORDER:
        value = getattr(original, name)
        if isinstance(value, list):
            update[name] = [func(item) for item in value]
        else:
            update[name] = func(value)
    update["language"] = TARGET_LANGUAGE
    return original.model_copy(update=update)


def find_residual_latin_fields(record: SummaryRecord) -> list[str]:
    """Return identifiers of entries that still contain a run of Latin letters."""

    return [identifier for identifier, text in record.iter_fields() if has_residual_latin(text)]


# ----------------------------------------------------------------------
# tiers
# ----------------------------------------------------------------------
class TranslationStrategy(Protocol):
    mode: TranslationMode

    async def attempt(self, original: SummaryRecord) -> TierOutcome: ...


def _check_shape(original: SummaryRecord, translated: SummaryRecord) -> None:
    for name in LIST_FIELDS:
        if len(getattr(translated, name)) != len(getattr(original, name)):
            raise ParseError(f"translated {name} has a different number of entries")


class RemoteBatchStrategy:
    """Translate the whole record in one remote call.

    With a ``document_id`` the document translation endpoint is used, otherwise
    the record is serialised into a single ``translate/term`` payload.
    """

    mode = TranslationMode.REMOTE_BATCH

    def __init__(self, client: DocumentServiceClient, *, document_id: str | None = None) -> None:
        self._client = client
        self._document_id = document_id

    async def _translate_serialised(self, original: SummaryRecord) -> SummaryRecord:
        payload = json.dumps(original.text_payload(), ensure_ascii=False)
        translated_term = await self._client.translate_term(payload)
        try:
            parsed = json.loads(translated_term)
        except json.JSONDecodeError as exc:
            raise ParseError("batch translation returned malformed JSON") from exc
        if not isinstance(parsed, dict):
            raise ParseError("batch translation did not return an object")

        expected = original.text_payload()
        missing = [key for key in expected if key not in parsed]
        if missing:
            raise ParseError(f"batch translation is missing {', '.join(missing)}")
        for key, value in expected.items():
            if isinstance(value, list) != isinstance(parsed[key], list):
                raise ParseError(f"batch translation changed the type of {key}")
        try:
            return SummaryRecord.model_validate({**parsed, "language": TARGET_LANGUAGE})
        except ValueError as exc:
            raise ParseError("batch translation could not be read as a summary") from exc

    async def attempt(self, original: SummaryRecord) -> TierOutcome:
        try:
            if self._document_id is not None:
                record = await self._client.translate_document(self._document_id)
            else:
                record = await self._translate_serialised(original)
            _check_shape(original, record)
        except ClientError as exc:
            return TierOutcome(tier=self.mode, error=exc.info())
        record = record.model_copy(update={"language": TARGET_LANGUAGE, "sample": original.sample})
        return TierOutcome(tier=self.mode, record=record)


class RemotePerFieldStrategy:
    """Translate each entry with its own ``translate/term`` call.

    An entry the service declines is passed through the dictionary instead;
    an unreachable service fails the whole tier.
    """

    mode = TranslationMode.REMOTE_PER_FIELD

    def __init__(self, client: DocumentServiceClient, dictionary: PhraseDictionary) -> None:
        self._client = client
        self._dictionary = dictionary

    async def _translate_entry(self, text: str) -> str:
        if not text.strip():
            return text
        try:
            return await self._client.translate_term(text)
        except RemoteUnavailableError:
            raise
        except ClientError as exc:
            if exc.kind is ErrorKind.REMOTE_UNAVAILABLE:
                raise
            logger.info("term translation declined (%s); using dictionary for this entry", exc.kind.value)
            return self._dictionary.substitute(text)

    async def attempt(self, original: SummaryRecord) -> TierOutcome:
        entries = list(original.iter_fields())
        results = await asyncio.gather(
            *(self._translate_entry(text) for _, text in entries),
            return_exceptions=True,
        )

        translated: dict[str, str] = {}
        for (identifier, _), result in zip(entries, results):
            if isinstance(result, ClientError):
                return TierOutcome(tier=self.mode, error=result.info())
            if isinstance(result, BaseException):
                raise result
            translated[identifier] = result

        update: dict[str, Any] = {}
        for name in FIELD_ORDER:
            value = getattr(original, name)
            if isinstance(value, list):
                update[name] = [translated[f"{name}[{index}]"] for index in range(len(value))]
            else:
                update[name] = translated[name]
        update["language"] = TARGET_LANGUAGE
        return TierOutcome(tier=self.mode, record=original.model_copy(update=update))


class LocalDictionaryStrategy:
    mode = TranslationMode.LOCAL_DICTIONARY

    def __init__(self, dictionary: PhraseDictionary) -> None:
        self._dictionary = dictionary

    async def attempt(self, original: SummaryRecord) -> TierOutcome:
        return TierOutcome(tier=self.mode, record=self._dictionary.translate_record(original))


async def first_success(
    strategies: list[TranslationStrategy],
    original: SummaryRecord,
) -> tuple[TierOutcome | None, list[TierOutcome]]:
    """Run ``strategies`` in order and stop at the first outcome with a record."""

    outcomes: list[TierOutcome] = []
    for strategy in strategies:
        outcome = await strategy.attempt(original)
        outcomes.append(outcome)
        if outcome.ok:
            return outcome, outcomes
        if outcome.error is not None:
            logger.info(
                "translation tier %s failed (%s): %s",
                outcome.tier.value,
                outcome.error.kind.value,
                outcome.error.message,
            )
    return None, outcomes


# ----------------------------------------------------------------------
# cascade + cache
# ----------------------------------------------------------------------
TIER_ORDER: tuple[TranslationMode, ...] = (
    TranslationMode.REMOTE_BATCH,
    TranslationMode.REMOTE_PER_FIELD,
    TranslationMode.LOCAL_DICTIONARY,
)


class TranslationCascade:
    def __init__(self, client: DocumentServiceClient | None, dictionary: PhraseDictionary | None = None) -> None:
        self._client = client
        self._dictionary = dictionary or PhraseDictionary.default()

    @property
    def dictionary(self) -> PhraseDictionary:
        return self._dictionary

    def strategies(self, mode: TranslationMode, *, document_id: str | None = None) -> list[TranslationStrategy]:
        start = TIER_ORDER.index(mode)
        chain: list[TranslationStrategy] = []
        for tier in TIER_ORDER[start:]:
            if tier is TranslationMode.REMOTE_BATCH and self._client is not None:
                chain.append(RemoteBatchStrategy(self._client, document_id=document_id))
            elif tier is TranslationMode.REMOTE_PER_FIELD and self._client is not None:
                chain.append(RemotePerFieldStrategy(self._client, self._dictionary))
            elif tier is TranslationMode.LOCAL_DICTIONARY:
                chain.append(LocalDictionaryStrategy(self._dictionary))
        return chain

    async def translate(
        self,
        original: SummaryRecord,
        mode: TranslationMode = TranslationMode.REMOTE_BATCH,
        *,
        document_id: str | None = None,
    ) -> TranslationResult:
        if original.language == TARGET_LANGUAGE:
            return TranslationResult(record=original, residual_latin_fields=find_residual_latin_fields(original), tier=None)

        winner, outcomes = await first_success(self.strategies(mode, document_id=document_id), original)
        if winner is None or winner.record is None:
            raise RemoteUnavailableError("Translation failed. Please try again.")

        residual = find_residual_latin_fields(winner.record)
        if residual:
            logger.warning("translation via %s left Latin text in %s", winner.tier.value, ", ".join(residual))
        return TranslationResult(record=winner.record, residual_latin_fields=residual, tier=winner.tier, outcomes=outcomes)


class TranslationCache:
    """Memoised translations keyed by attempt generation, target language and mode."""

    def __init__(self) -> None:
        self._entries: dict[tuple[int, str, TranslationMode], TranslationResult] = {}

    def get(self, generation: int, mode: TranslationMode, language: str = TARGET_LANGUAGE) -> TranslationResult | None:
        return self._entries.get((generation, language, mode))

    def put(self, generation: int, mode: TranslationMode, result: TranslationResult, language: str = TARGET_LANGUAGE) -> None:
        self._entries[(generation, language, mode)] = result

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
