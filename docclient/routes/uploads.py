from __future__ import annotations

from pathlib import Path

from fastapi import UploadFile

from docclient.domain import SelectedDocument


async def read_selection(upload: UploadFile) -> SelectedDocument:
    """Read an uploaded file fully into a :class:`SelectedDocument`."""

    try:
        content = await upload.read()
    finally:
        await upload.close()
    return SelectedDocument(
        filename=Path(upload.filename or "").name,
        content=content,
        content_type=upload.content_type,
    )
