from __future__ import annotations

from typing import Any, Iterator, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Language = Literal["english", "hindi"]

TEXT_FIELDS: tuple[str, ...] = ("document_overview", "plain_language_summary")
LIST_FIELDS: tuple[str, ...] = ("key_parties", "important_clauses", "critical_dates", "potential_concerns")
FIELD_ORDER: tuple[str, ...] = (
    "document_overview",
    "key_parties",
    "important_clauses",
    "critical_dates",
    "potential_concerns",
    "plain_language_summary",
)

SUMMARY_KEYS = {
    "documentOverview",
    "keyParties",
    "importantClauses",
    "criticalDates",
    "potentialConcerns",
    "plainLanguageSummary",
    *FIELD_ORDER,
}


def _normalise_language(value: Any) -> str:
    text = str(value or "english").strip().lower()
    return "hindi" if text in {"hindi", "hi", "hin"} else "english"


def _text_or_empty(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return [str(value)]


class SummaryRecord(BaseModel):
    """Structured summary of a single document."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    document_overview: str = Field(default="", alias="documentOverview")
    key_parties: list[str] = Field(default_factory=list, alias="keyParties")
    important_clauses: list[str] = Field(default_factory=list, alias="importantClauses")
    critical_dates: list[str] = Field(default_factory=list, alias="criticalDates")
    potential_concerns: list[str] = Field(default_factory=list, alias="potentialConcerns")
    plain_language_summary: str = Field(default="", alias="plainLanguageSummary")
    language: Language = "english"
    sample: bool = False

    @field_validator("document_overview", "plain_language_summary", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _text_or_empty(value)

    @field_validator("key_parties", "important_clauses", "critical_dates", "potential_concerns", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[str]:
        return _string_list(value)

    @field_validator("language", mode="before")
    @classmethod
    def _coerce_language(cls, value: Any) -> str:
        return _normalise_language(value)

    def iter_fields(self) -> Iterator[tuple[str, str]]:
        """Yield ``(identifier, text)`` for every textual entry in display order.

        List entries are addressed as ``key_parties[0]``, ``key_parties[1]`` ...
        """

        for name in FIELD_ORDER:
            value = getattr(self, name)
            if isinstance(value, list):
                for index, item in enumerate(value):
                    yield f"{name}[{index}]", item
            else:
                yield name, value

    def text_payload(self) -> dict[str, Any]:
        """Return the textual fields keyed by their wire names."""

        return self.model_dump(by_alias=True, include=set(FIELD_ORDER))

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class LegacyKeyPointsRecord(BaseModel):
    """Older ``{keyPoints, summary}`` shape still returned by the free-trial endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    key_points: list[str] = Field(default_factory=list, alias="keyPoints")
    summary: str = ""
    language: Language = "english"

    @field_validator("key_points", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[str]:
        return _string_list(value)

    @field_validator("summary", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _text_or_empty(value)

    @field_validator("language", mode="before")
    @classmethod
    def _coerce_language(cls, value: Any) -> str:
        return _normalise_language(value)

    def to_summary_record(self) -> SummaryRecord:
        return SummaryRecord(
            document_overview=self.summary,
            important_clauses=list(self.key_points),
            plain_language_summary=self.summary,
            language=self.language,
        )


def parse_summary(data: Any, *, language: Any = None) -> SummaryRecord:
    """Parse either summary shape into a :class:`SummaryRecord`.

    Raises ``ValueError`` (or pydantic's subclass of it) for unusable payloads.
    """

    if isinstance(data, SummaryRecord):
        return data
    if not isinstance(data, dict):
        raise ValueError("summary payload must be an object")

    payload = dict(data)
    if language is not None and "language" not in payload:
        payload["language"] = language

    if SUMMARY_KEYS.intersection(payload):
        return SummaryRecord.model_validate(payload)
    if "keyPoints" in payload or "key_points" in payload or "summary" in payload:
        return LegacyKeyPointsRecord.model_validate(payload).to_summary_record()
    raise ValueError("summary payload has no recognised fields")


class DocumentRecord(BaseModel):
    """Document as stored by the remote service (only the fields the client reads)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    original_name: str | None = Field(default=None, alias="originalName")
    summary: SummaryRecord | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("summary", mode="before")
    @classmethod
    def _coerce_summary(cls, value: Any) -> SummaryRecord | None:
        if value in (None, {}, ""):
            return None
        return parse_summary(value)


class AnalyzeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    summary: SummaryRecord
    language: Language | None = None

    @field_validator("summary", mode="before")
    @classmethod
    def _coerce_summary(cls, value: Any) -> SummaryRecord:
        return parse_summary(value)

    @field_validator("language", mode="before")
    @classmethod
    def _coerce_language(cls, value: Any) -> str | None:
        return None if value is None else _normalise_language(value)


class TranslateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    translated_summary: SummaryRecord | None = Field(default=None, alias="translatedSummary")
    message: str | None = None

    @field_validator("translated_summary", mode="before")
    @classmethod
    def _coerce_summary(cls, value: Any) -> SummaryRecord | None:
        if value is None:
            return None
        return parse_summary(value, language="hindi")


class TermTranslation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    translated_term: str | None = Field(default=None, alias="translatedTerm")
    message: str | None = None
