"""
Upload Validation

Checks applied to an uploaded file before anything is stored:

- the file name is reduced to a safe basename with an allowed extension
- the payload is strict base64 (a ``data:`` URL prefix is accepted)
- the declared content type, when given, must match the extension
- the leading bytes must match the format the extension claims
- size is capped (413 above the limit)
- optionally, the bytes are scanned for known test-malware signatures
"""

import base64
import binascii
import hashlib
import re
from dataclasses import dataclass
from pathlib import PurePosixPath

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024

EXTENSION_MIME_MAP: dict[str, tuple[str, ...]] = {
    "pdf": ("application/pdf",),
    "png": ("image/png",),
    "jpg": ("image/jpeg",),
    "jpeg": ("image/jpeg",),
}
ALLOWED_EXTENSIONS = frozenset(EXTENSION_MIME_MAP)

MAGIC_BYTES: dict[str, tuple[bytes, ...]] = {
    "application/pdf": (b"%PDF-",),
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "image/jpeg": (b"\xff\xd8\xff",),
}

MALWARE_SIGNATURES: tuple[bytes, ...] = (
    b"X5O!P%@AP[4\\PZX54(P^)7CC)7}$EICAR-STANDARD-ANTIVIRUS-TEST-FILE!$H+H*",
)

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=]+$")
_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.IGNORECASE | re.DOTALL)
_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9_-]+")
_UNSAFE_SEGMENT_RE = re.compile(r"[^a-zA-Z0-9_-]")


class DocumentValidationError(ValueError):
    """An upload was rejected. ``status_code`` is the HTTP status to report."""

    def __init__(self, message: str, status_code: int = 400, error_code: str = "INVALID_DOCUMENT"):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


@dataclass(frozen=True)
class ValidatedFile:
    file_name: str
    extension: str
    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.content).hexdigest()


def normalize_file_name(file_name: str) -> tuple[str, str]:
    """
    Reduce ``file_name`` to ``<safe stem>.<extension>``.

    Returns:
        Tuple of (normalized file name, lower-cased extension)
    """
    if not file_name or not isinstance(file_name, str):
        raise DocumentValidationError("Invalid file name")

    base_name = PurePosixPath(file_name.strip().replace("\\", "/")).name
    if not base_name or base_name in (".", "..") or "\0" in base_name:
        raise DocumentValidationError("Invalid file name")

    stem, dot, extension = base_name.rpartition(".")
    if not dot:
        raise DocumentValidationError("File name must include an extension")

    extension = extension.lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise DocumentValidationError("File type is not allowed", error_code="FILE_TYPE_NOT_ALLOWED")

    safe_stem = _UNSAFE_NAME_RE.sub("_", stem)
    safe_stem = re.sub(r"_+", "_", safe_stem).strip("_")[:150] or "document"
    return f"{safe_stem}.{extension}", extension


def sanitize_storage_segment(value: object, field_name: str) -> str:
    normalized = _UNSAFE_SEGMENT_RE.sub("", str(value or "").strip())
    if not normalized:
        raise DocumentValidationError(f"Invalid {field_name}")
    return normalized


def decoded_length(encoded: str) -> int:
    """Byte length of a padded base64 string once decoded."""
    padding = len(encoded) - len(encoded.rstrip("="))
    return len(encoded) // 4 * 3 - padding


def _too_large(max_size: int) -> DocumentValidationError:
    return DocumentValidationError(
        f"File exceeds the maximum allowed size of {max_size // (1024 * 1024)}MB",
        status_code=413,
        error_code="FILE_TOO_LARGE",
    )


def decode_payload(
    data: str,
    extension: str,
    declared_mime_type: str | None = None,
    declared_size: int | None = None,
    max_size: int | None = None,
) -> tuple[bytes, str]:
    """
    Decode a base64 payload and resolve its MIME type.

    Payloads whose decoded size would exceed ``max_size`` are refused before
    decoding.

    Returns:
        Tuple of (decoded bytes, MIME type)
    """
    if not data or not isinstance(data, str):
        raise DocumentValidationError("Missing file data")

    match = _DATA_URL_RE.match(data.strip())
    if match:
        declared_mime_type = declared_mime_type or match.group(1)
        data = match.group(2)

    cleaned = re.sub(r"\s+", "", data)
    if len(cleaned) % 4 != 0 or not _BASE64_RE.match(cleaned):
        raise DocumentValidationError("Invalid file data encoding")

    if max_size is not None and decoded_length(cleaned) > max_size:
        raise _too_large(max_size)

    try:
        content = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DocumentValidationError("Invalid file data encoding") from e

    if not content:
        raise DocumentValidationError("File data is empty")

    if declared_size is not None and declared_size != len(content):
        raise DocumentValidationError("File data size mismatch")

    allowed_mimes = EXTENSION_MIME_MAP.get(extension, ())
    mime_type = declared_mime_type.lower() if declared_mime_type else None
    if mime_type and mime_type not in allowed_mimes:
        raise DocumentValidationError(
            "File type does not match the provided content-type",
            error_code="CONTENT_TYPE_MISMATCH",
        )

    resolved = mime_type or (allowed_mimes[0] if allowed_mimes else None)
    if not resolved:
        raise DocumentValidationError("File type is not allowed", error_code="FILE_TYPE_NOT_ALLOWED")

    return content, resolved


def matches_magic_bytes(content: bytes, mime_type: str) -> bool:
    signatures = MAGIC_BYTES.get(mime_type)
    if not signatures:
        return False
    return any(content.startswith(sig) for sig in signatures)


def contains_malware_signature(content: bytes) -> bool:
    return any(sig in content for sig in MALWARE_SIGNATURES)


def validate_upload(
    file_name: str,
    data: str,
    declared_mime_type: str | None = None,
    declared_size: int | None = None,
    *,
    max_size: int = MAX_FILE_SIZE_BYTES,
    scan_for_malware: bool = False,
) -> ValidatedFile:
    """
    Run every upload check.

    Raises:
        DocumentValidationError: On the first failed check
    """
    normalized_name, extension = normalize_file_name(file_name)
    content, mime_type = decode_payload(
        data, extension, declared_mime_type, declared_size, max_size=max_size
    )

    if len(content) > max_size:
        raise _too_large(max_size)

    if not matches_magic_bytes(content, mime_type):
        raise DocumentValidationError(
            "File content does not match its type", error_code="CONTENT_TYPE_MISMATCH"
        )

    if scan_for_malware and contains_malware_signature(content):
        raise DocumentValidationError(
            "Malicious content detected in the uploaded file", error_code="MALWARE_DETECTED"
        )

    return ValidatedFile(
        file_name=normalized_name,
        extension=extension,
        mime_type=mime_type,
        content=content,
    )
