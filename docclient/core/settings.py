"""Environment driven configuration for the analysis client."""
from __future__ import annotations

import os
from dataclasses import dataclass, field

MEGABYTE = 1024 * 1024

QUOTA_STORAGE_KEY = "freeTrialsUsed"
CREDENTIAL_STORAGE_KEY = "token"


def _float_env(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _origins_env() -> list[str]:
    origins_env = os.getenv("DOCCLIENT_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    return origins


@dataclass(frozen=True, slots=True)
class Settings:
    api_base: str = "http://localhost:5000"
    timeout: float = 30.0
    storage_path: str | None = None
    max_upload_bytes: int | None = 10 * MEGABYTE
    trial_max_upload_bytes: int | None = None
    fallback_delay: float = 1.5
    trial_limit: int = 15
    cors_origins: list[str] = field(default_factory=list)
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Build :class:`Settings` from the current process environment."""

    max_upload_mb = _float_env("DOCCLIENT_MAX_UPLOAD_MB", 10)
    trial_max_upload_mb = _float_env("DOCCLIENT_TRIAL_MAX_UPLOAD_MB", None)
    trial_limit = _float_env("DOCCLIENT_TRIAL_LIMIT", 15)

    return Settings(
        api_base=(os.getenv("DOCCLIENT_API_BASE") or "http://localhost:5000").rstrip("/"),
        timeout=_float_env("DOCCLIENT_TIMEOUT", 30.0) or 30.0,
        storage_path=os.getenv("DOCCLIENT_STORAGE_PATH") or None,
        max_upload_bytes=int(max_upload_mb * MEGABYTE) if max_upload_mb else None,
        trial_max_upload_bytes=int(trial_max_upload_mb * MEGABYTE) if trial_max_upload_mb else None,
        fallback_delay=max(0.0, _float_env("DOCCLIENT_FALLBACK_DELAY", 1.5) or 0.0),
        trial_limit=int(trial_limit) if trial_limit is not None else 15,
        cors_origins=_origins_env(),
        log_level=(os.getenv("DOCCLIENT_LOG_LEVEL") or "INFO").upper(),
    )
