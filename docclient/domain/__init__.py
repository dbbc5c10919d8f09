"""Domain layer definitions."""

from .attempts import AnalysisAttempt, AttemptStatus, SelectedDocument, reduce
from .notices import Notice

__all__ = [
    "AnalysisAttempt",
    "AttemptStatus",
    "Notice",
    "SelectedDocument",
    "reduce",
]
