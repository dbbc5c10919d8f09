"""Bearer credential persistence and request attachment."""
from __future__ import annotations

import base64
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, MutableMapping

import httpx

from docclient.core.settings import CREDENTIAL_STORAGE_KEY
from docclient.core.storage import KeyValueStore

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"


@dataclass(frozen=True, slots=True)
class Credential:
    token: str
    expires_at: float

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)


def _decode_segment(segment: str) -> dict[str, Any]:
    padded = segment + "=" * (-len(segment) % 4)
    raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    claims = json.loads(raw.decode("utf-8"))
    if not isinstance(claims, dict):
        raise ValueError("token claims must be an object")
    return claims


def decode_credential(token: str) -> Credential:
    """Read the ``exp`` claim from a JWT without verifying its signature.

    Raises ``ValueError`` when the token is not a decodable JWT or has no
    numeric expiry.
    """

    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("token is not a JWT")
    try:
        claims = _decode_segment(parts[1])
    except (UnicodeError, json.JSONDecodeError, ValueError) as exc:
        raise ValueError("token payload is not decodable") from exc
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise ValueError("token has no numeric exp claim")
    return Credential(token=token, expires_at=float(exp))


class CredentialStore:
    """Holds the current bearer credential for authenticated calls.

    ``default_headers`` mirrors the credential into a shared header mapping
    (normally ``httpx.AsyncClient.headers``) so every outgoing request carries
    it; ``attach`` re-checks expiry per request.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        key: str = CREDENTIAL_STORAGE_KEY,
        default_headers: MutableMapping[str, str] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._key = key
        self._default_headers = default_headers
        self._clock = clock
        self._credential: Credential | None = None

    def bind_headers(self, headers: MutableMapping[str, str]) -> None:
        self._default_headers = headers
        self._sync_header()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _sync_header(self) -> None:
        if self._default_headers is None:
            return
        if self._credential is not None:
            self._default_headers[AUTHORIZATION_HEADER] = f"Bearer {self._credential.token}"
        elif AUTHORIZATION_HEADER in self._default_headers:
            del self._default_headers[AUTHORIZATION_HEADER]

    def _load(self) -> Credential | None:
        if self._credential is not None:
            return self._credential
        token = self._store.get(self._key)
        if not token:
            return None
        try:
            self._credential = decode_credential(token)
        except ValueError:
            logger.info("persisted credential is not decodable; clearing it")
            self.clear()
            return None
        return self._credential

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    @property
    def credential(self) -> Credential | None:
        return self._load()

    def set_credential(self, token: str) -> None:
        """Replace the credential wholesale.

        An undecodable token is treated as already expired and cleared.
        """

        try:
            credential: Credential | None = decode_credential(token)
        except ValueError:
            credential = None
        self._store.set(self._key, token)
        self._credential = credential
        if credential is None:
            self.clear()
            return
        self._sync_header()

    def clear(self) -> None:
        self._store.delete(self._key)
        self._credential = None
        self._sync_header()

    def is_valid(self) -> bool:
        credential = self._load()
        if credential is None:
            return False
        if credential.expires_at <= self._clock():
            logger.info("credential expired at %s; logging out", credential.expires_at_datetime.isoformat())
            self.clear()
            return False
        return True

    def restore(self) -> bool:
        """Pick up a persisted credential at start-up and prime the default header."""

        valid = self.is_valid()
        self._sync_header()
        return valid

    def attach(self, request: httpx.Request) -> httpx.Request:
        credential = self._credential if self.is_valid() else None
        if credential is not None:
            request.headers[AUTHORIZATION_HEADER] = f"Bearer {credential.token}"
        elif AUTHORIZATION_HEADER in request.headers:
            del request.headers[AUTHORIZATION_HEADER]
        return request
