from __future__ import annotations

from pathlib import PurePath

from docclient.core.errors import DocumentValidationError

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({"pdf", "doc", "docx", "txt", "rtf"})

SUPPORTED_CONTENT_TYPES: dict[str, str] = {
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/plain": "txt",
    "application/rtf": "rtf",
    "text/rtf": "rtf",
}


def file_extension(filename: str) -> str:
    return PurePath(filename).suffix.lower().lstrip(".")


def is_supported_file(filename: str, content_type: str | None = None) -> bool:
    if file_extension(filename) in SUPPORTED_EXTENSIONS:
        return True
    if content_type:
        base_type = content_type.split(";", 1)[0].strip().lower()
        return base_type in SUPPORTED_CONTENT_TYPES
    return False


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def validate_document(
    filename: str,
    size: int,
    content_type: str | None = None,
    *,
    max_bytes: int | None = None,
) -> None:
    if not filename:
        raise DocumentValidationError("Please select a document to upload.")
    if not is_supported_file(filename, content_type):
        raise DocumentValidationError("Unsupported file type. Please upload a PDF, DOC, DOCX, RTF, or TXT file.")
    if size <= 0:
        raise DocumentValidationError("The selected document is empty.")
    if max_bytes is not None and size > max_bytes:
        raise DocumentValidationError(f"File is too large. Maximum file size is {format_file_size(max_bytes)}.")
