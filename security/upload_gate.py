"""
Upload metadata validation.

Applied at receipt (declared metadata) and again after the write (actual
size on disk). The dangerous-extension deny-list is evaluated first and wins
over the allow-lists.
"""
import os
import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

from security.patterns import (
    file_extensions,
    final_extension,
    matches_dangerous_file_extension,
    matches_path_traversal,
)

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
MAX_FILENAME_LENGTH = 255

FILENAME_RE = re.compile(r"^[a-zA-Z0-9._\-\s()]+$")

ALLOWED_MIME_TYPES: FrozenSet[str] = frozenset({
    # Images
    "image/jpeg", "image/jpg", "image/png", "image/gif", "image/bmp",
    "image/webp", "image/svg+xml", "image/tiff", "image/x-icon",
    # Documents
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "application/rtf",
    "application/vnd.oasis.opendocument.text",
    # Spreadsheets
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.oasis.opendocument.spreadsheet",
    "text/csv",
    # Presentations
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/vnd.oasis.opendocument.presentation",
    # Archives
    "application/zip", "application/x-zip-compressed",
    "application/x-rar-compressed", "application/vnd.rar",
    "application/x-7z-compressed",
    "application/x-tar",
    "application/gzip", "application/x-gzip",
})

ALLOWED_EXTENSIONS: FrozenSet[str] = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".svg", ".tiff", ".ico",
    ".pdf", ".doc", ".docx", ".txt", ".rtf", ".odt",
    ".xls", ".xlsx", ".ods", ".csv",
    ".ppt", ".pptx", ".odp",
    ".zip", ".rar", ".7z", ".tar", ".gz",
})


class UploadRejection(Enum):
    MISSING_NAME = "missing_name"
    DANGEROUS_EXTENSION = "dangerous_extension"
    PATH_TRAVERSAL = "path_traversal"
    INVALID_FILENAME = "invalid_filename"
    NAME_TOO_LONG = "name_too_long"
    TOO_LARGE = "too_large"
    UNSUPPORTED_TYPE = "unsupported_type"


REJECTION_MESSAGES = {
    UploadRejection.MISSING_NAME: "File name is required",
    UploadRejection.DANGEROUS_EXTENSION: "This file type is not allowed for security reasons",
    UploadRejection.PATH_TRAVERSAL: "File name contains a path",
    UploadRejection.INVALID_FILENAME: "File name contains invalid characters",
    UploadRejection.NAME_TOO_LONG: f"File name is too long (max {MAX_FILENAME_LENGTH} characters)",
    UploadRejection.TOO_LARGE: "File is too large (max 10MB)",
    UploadRejection.UNSUPPORTED_TYPE: "Unsupported file type",
}


@dataclass(frozen=True)
class UploadCandidate:
    declared_name: str
    declared_mime_type: Optional[str]
    size_bytes: int


@dataclass(frozen=True)
class UploadVerdict:
    accepted: bool
    reason: Optional[UploadRejection] = None

    @property
    def message(self) -> str:
        return REJECTION_MESSAGES[self.reason] if self.reason else ""


ACCEPT = UploadVerdict(accepted=True)


class UploadGate:
    """Validates declared upload metadata against fixed lists."""

    def __init__(self, max_size: int = MAX_UPLOAD_BYTES):
        self.max_size = max_size

    def validate_metadata(self, candidate: UploadCandidate) -> UploadVerdict:
        name = candidate.declared_name or ""
        if not name.strip():
            return UploadVerdict(False, UploadRejection.MISSING_NAME)

        if matches_dangerous_file_extension(name):
            return UploadVerdict(False, UploadRejection.DANGEROUS_EXTENSION)

        if matches_path_traversal(name) or "/" in name or "\\" in name:
            return UploadVerdict(False, UploadRejection.PATH_TRAVERSAL)

        if not FILENAME_RE.match(name):
            return UploadVerdict(False, UploadRejection.INVALID_FILENAME)

        if len(name) > MAX_FILENAME_LENGTH:
            return UploadVerdict(False, UploadRejection.NAME_TOO_LONG)

        if candidate.size_bytes > self.max_size:
            return UploadVerdict(False, UploadRejection.TOO_LARGE)

        mime = (candidate.declared_mime_type or "").split(";")[0].strip().lower()
        if mime not in ALLOWED_MIME_TYPES and final_extension(name) not in ALLOWED_EXTENSIONS:
            return UploadVerdict(False, UploadRejection.UNSUPPORTED_TYPE)

        return ACCEPT

    def validate_stored(self, path: str, candidate: UploadCandidate) -> UploadVerdict:
        """Re-check after the write, using the size actually on disk."""
        actual_size = os.path.getsize(path)
        return self.validate_metadata(UploadCandidate(
            declared_name=candidate.declared_name,
            declared_mime_type=candidate.declared_mime_type,
            size_bytes=actual_size,
        ))


def is_servable_name(name: str) -> bool:
    """Stored names served from /uploads: plain names with an allowed extension."""
    if not name or matches_path_traversal(name) or "/" in name or "\\" in name:
        return False
    extensions = file_extensions(name)
    return bool(extensions) and not matches_dangerous_file_extension(name) and extensions[-1] in ALLOWED_EXTENSIONS
