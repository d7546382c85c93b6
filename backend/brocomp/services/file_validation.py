"""Attachment validation: size, MIME allow-list and magic numbers."""

import base64
import binascii
import logging
from dataclasses import dataclass

from brocomp.services.sanitize import sanitize_file_name

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
MAX_FILES_PER_COMPLAINT = 5

ALLOWED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    }
)

_ZIP = (b"PK\x03\x04",)

# Leading bytes per MIME type. Types without an entry (legacy Office) are not
# signature checked.
FILE_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/png": (b"\x89PNG",),
    "image/gif": (b"GIF8",),
    "image/webp": (b"RIFF",),
    "application/pdf": (b"%PDF",),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": _ZIP,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": _ZIP,
}

SIZE_ERROR = "File size exceeds 5MB limit"
TYPE_ERROR = "File type not allowed. Allowed: images, PDF, Word, Excel"
SIGNATURE_ERROR = "File signature does not match declared type"


class FileValidationError(ValueError):
    """Raised when an upload fails validation."""

    def __init__(self, message: str, status_code: int = 400):
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class ValidatedFile:
    file_name: str
    size: int
    content_type: str


def matches_signature(header: bytes, content_type: str) -> bool:
    signatures = FILE_SIGNATURES.get(content_type)
    if not signatures:
        return True
    return any(header.startswith(signature) for signature in signatures)


def decode_header(data: str) -> bytes | None:
    """Decode a base64 file header, accepting ``data:...;base64,`` URLs."""
    payload = data.split(",", 1)[1] if "," in data else data
    try:
        return base64.b64decode(payload, validate=False)[:16]
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Could not decode file header: {e}")
        return None


def validate_upload(
    file_name: str,
    size: int,
    content_type: str,
    header: bytes | None = None,
) -> ValidatedFile:
    """Validate one upload.

    Raises:
        FileValidationError: size (413), type or signature (400) failures.
    """
    if size > MAX_FILE_SIZE:
        raise FileValidationError(SIZE_ERROR, status_code=413)
    if content_type not in ALLOWED_MIME_TYPES:
        raise FileValidationError(TYPE_ERROR)

    safe_name = sanitize_file_name(file_name)
    if safe_name != file_name:
        logger.info(f"Sanitized upload name {file_name!r} -> {safe_name!r}")
    if not safe_name:
        raise FileValidationError("File name is empty")

    if header is not None and not matches_signature(header, content_type):
        logger.warning(f"Signature mismatch for declared type {content_type}")
        raise FileValidationError(SIGNATURE_ERROR)

    return ValidatedFile(file_name=safe_name, size=size, content_type=content_type)


def check_file_count(existing: int, adding: int = 1) -> None:
    if existing + adding > MAX_FILES_PER_COMPLAINT:
        raise FileValidationError(
            f"A complaint can have at most {MAX_FILES_PER_COMPLAINT} files"
        )
