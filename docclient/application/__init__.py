"""Application services."""

from .sessions import (
    AnonymousSession,
    AuthenticatedSession,
    SessionRegistry,
    SubmitOutcome,
    build_sessions,
    configure_sessions,
    get_account_session,
    get_trial_session,
)
from .translation import TranslationCascade, TranslationMode, TranslationResult

__all__ = [
    "AnonymousSession",
    "AuthenticatedSession",
    "SessionRegistry",
    "SubmitOutcome",
    "TranslationCascade",
    "TranslationMode",
    "TranslationResult",
    "build_sessions",
    "configure_sessions",
    "get_account_session",
    "get_trial_session",
]
