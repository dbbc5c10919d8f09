"""HTTP client for the remote document summarisation service."""
from __future__ import annotations

import json
import logging
import time
from typing import Any
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from docclient.core.errors import ParseError, RemoteServiceError, RemoteUnavailableError
from docclient.core.schema import (
    AnalyzeResponse,
    DocumentRecord,
    SummaryRecord,
    TermTranslation,
    TranslateResponse,
)
from docclient.domain import SelectedDocument
from docclient.infrastructure.credentials import CredentialStore

logger = logging.getLogger(__name__)


class DocumentServiceClient:
    """Async client for the document, free-trial and translation endpoints."""

    def __init__(
        self,
        api_base: str,
        *,
        credentials: CredentialStore | None = None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")

        self._api_base = f"{parsed.scheme}://{parsed.netloc}{parsed.path.rstrip('/')}"
        self._client = http_client or httpx.AsyncClient(timeout=timeout, transport=transport)
        self._owns_client = http_client is None
        self._credentials = credentials
        if credentials is not None:
            credentials.bind_headers(self._client.headers)

    @property
    def headers(self) -> httpx.Headers:
        return self._client.headers

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self._api_base}/api/{path.lstrip('/')}"

    @staticmethod
    def _error_message(response: httpx.Response) -> str | None:
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
            if message:
                return str(message)
        return None

    @staticmethod
    def _multipart(field_name: str, document: SelectedDocument) -> dict[str, tuple[str, bytes, str]]:
        content_type = document.content_type or "application/octet-stream"
        return {field_name: (document.filename, document.content, content_type)}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        default_error: str,
        authenticated: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        request = self._client.build_request(method, self._url(path), **kwargs)
        if authenticated and self._credentials is not None:
            self._credentials.attach(request)

        try:
            response = await self._client.send(request)
        except httpx.TransportError as exc:
            logger.warning("%s %s unreachable: %s", method, path, exc)
            raise RemoteUnavailableError(
                "The document service is unreachable. Check your connection and try again."
            ) from exc

        if response.is_error:
            message = self._error_message(response)
            logger.warning(
                "%s %s failed with %s: %s", method, path, response.status_code, message or "(no message)"
            )
            raise RemoteServiceError(
                message or default_error,
                status_code=response.status_code,
                server_message=message is not None,
            )

        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ParseError(f"{default_error} (unreadable response)") from exc
        if not isinstance(body, dict):
            raise ParseError(f"{default_error} (unexpected response shape)")
        if body.get("success") is False:
            message = body.get("message")
            raise RemoteServiceError(
                str(message or default_error),
                status_code=response.status_code,
                server_message=bool(message),
            )
        return body

    @staticmethod
    def _document_from(body: dict[str, Any], default_error: str) -> DocumentRecord:
        payload = body.get("document", body)
        try:
            return DocumentRecord.model_validate(payload)
        except ValidationError as exc:
            raise ParseError(default_error) from exc

    # ------------------------------------------------------------------
    # anonymous flow
    # ------------------------------------------------------------------
    async def analyze_anonymous(self, document: SelectedDocument, language: str = "english") -> AnalyzeResponse:
        default_error = "Failed to upload document. Please try again."
        body = await self._request(
            "POST",
            "free-trial/upload",
            default_error=default_error,
            params={"language": language},
            files=self._multipart("document", document),
            data={"language": language} if language == "hindi" else None,
        )
        try:
            return AnalyzeResponse.model_validate(body)
        except ValidationError as exc:
            raise ParseError("Invalid summary format received from the server") from exc

    # ------------------------------------------------------------------
    # authenticated flow
    # ------------------------------------------------------------------
    async def login(self, email: str, password: str) -> tuple[str, dict[str, Any]]:
        body = await self._request(
            "POST",
            "auth/login",
            default_error="Login failed. Please check your credentials.",
            json={"email": email, "password": password},
        )
        token = body.get("token")
        if not isinstance(token, str) or not token:
            raise ParseError("Login response did not include a token")
        user = body.get("user") if isinstance(body.get("user"), dict) else {}
        return token, user

    async def get_current_user(self) -> dict[str, Any]:
        """Return the profile behind the current credential."""

        body = await self._request(
            "GET",
            "auth/user",
            default_error="Failed to load the current user.",
            authenticated=True,
        )
        if "user" not in body:
            return {key: value for key, value in body.items() if key != "success"}
        user = body["user"]
        if not isinstance(user, dict):
            raise ParseError("User response is not an object")
        return user

    async def upload_document(self, document: SelectedDocument) -> DocumentRecord:
        default_error = "Failed to upload document. Please try again."
        body = await self._request(
            "POST",
            "documents/upload",
            default_error=default_error,
            authenticated=True,
            files=self._multipart("file", document),
        )
        return self._document_from(body, default_error)

    async def summarize_document(self, document_id: str) -> DocumentRecord:
        default_error = "Failed to generate summary. Please try again."
        body = await self._request(
            "POST",
            f"documents/{document_id}/summarize",
            default_error=default_error,
            authenticated=True,
        )
        if "document" not in body and "summary" in body:
            body = {"document": {"_id": document_id, "summary": body["summary"]}}
        return self._document_from(body, default_error)

    async def get_document(self, document_id: str) -> DocumentRecord:
        default_error = "Failed to fetch document details."
        body = await self._request("GET", f"documents/{document_id}", default_error=default_error, authenticated=True)
        return self._document_from(body, default_error)

    # ------------------------------------------------------------------
    # translation
    # ------------------------------------------------------------------
    async def translate_document(self, document_id: str) -> SummaryRecord:
        default_error = "Failed to translate summary"
        body = await self._request(
            "GET",
            f"translate/documents/{document_id}/translate",
            default_error=default_error,
            authenticated=True,
            params={
                "useAI": "true",
                "completeTranslation": "true",
                "forceComplete": "true",
                "timestamp": str(int(time.time() * 1000)),
            },
            headers={"X-Translation-Mode": "complete"},
        )
        try:
            response = TranslateResponse.model_validate(body)
        except ValidationError as exc:
            raise ParseError("Malformed translated summary") from exc
        if response.translated_summary is None:
            raise ParseError("Translation response did not include a summary")
        return response.translated_summary

    async def translate_term(self, term: str) -> str:
        default_error = "Failed to translate term"
        body = await self._request("POST", "translate/term", default_error=default_error, json={"term": term})
        try:
            response = TermTranslation.model_validate(body)
        except ValidationError as exc:
            raise ParseError("Malformed term translation") from exc
        if not response.success or response.translated_term is None:
            raise RemoteServiceError(response.message or default_error, server_message=response.message is not None)
        return response.translated_term

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["DocumentServiceClient"]
