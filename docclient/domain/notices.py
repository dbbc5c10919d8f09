"""User-facing notices emitted by the session controller."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

NoticeLevel = Literal["info", "success", "warning", "error"]


@dataclass(frozen=True, slots=True)
class Notice:
    level: NoticeLevel
    message: str
    code: str | None = None
