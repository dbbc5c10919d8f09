from __future__ import annotations

import base64
import json
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))


def _b64(data: dict) -> str:
    raw = json.dumps(data).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def make_token(exp: float, **claims) -> str:
    header = _b64({"alg": "HS256", "typ": "JWT"})
    payload = _b64({"id": "user-1", "exp": exp, **claims})
    return f"{header}.{payload}.signature"


@pytest.fixture()
def token_factory():
    return make_token


@pytest.fixture()
def summary_payload() -> dict:
    return {
        "documentOverview": "The agreement is between two parties",
        "keyParties": ["Alice", "Bob"],
        "importantClauses": ["Payment within 30 days"],
        "criticalDates": ["1 January 2025"],
        "potentialConcerns": ["Late fees are high"],
        "plainLanguageSummary": "Pay rent on time",
    }
