from __future__ import annotations

import base64
import binascii
import re

from app.integrations.coze import InvalidInput

PDF_MAGIC = b"%PDF-"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
JPEG_MAGIC = b"\xff\xd8\xff"
GIF_MAGICS = (b"GIF87a", b"GIF89a")
BMP_MAGIC = b"BM"
WEBP_RIFF_MAGIC = b"RIFF"
WEBP_WEBP_MAGIC = b"WEBP"

_DATA_URL_RE = re.compile(r"^data:(.+?);base64,", re.IGNORECASE)
_BASE64_MARKER = "base64,"


def detect_mime_from_data_url(value: str | None) -> str | None:
    if not value:
        return None
    match = _DATA_URL_RE.match(value.strip())
    return match.group(1).strip().lower() if match else None


def normalize_base64(value: str | None) -> str:
    if not value:
        return ""
    idx = value.find(_BASE64_MARKER)
    payload = value[idx + len(_BASE64_MARKER):] if idx != -1 else value
    return "".join(payload.split())


def decode_base64_payload(value: str | None, *, field_label: str) -> bytes:
    """Decode a bare or data-URL base64 string; empty or malformed input is rejected."""
    payload = normalize_base64(value)
    if not payload:
        raise InvalidInput(f"{field_label} is required.")
    padded = payload + "=" * (-len(payload) % 4)
    try:
        content = base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidInput(f"{field_label} is not valid base64.") from exc
    if not content:
        raise InvalidInput(f"{field_label} is empty.")
    return content


def sniff_mime(content: bytes) -> str | None:
    head = content[:16]
    if head.startswith(PDF_MAGIC):
        return "application/pdf"
    if head.startswith(PNG_MAGIC):
        return "image/png"
    if head.startswith(JPEG_MAGIC):
        return "image/jpeg"
    if any(head.startswith(magic) for magic in GIF_MAGICS):
        return "image/gif"
    if head.startswith(WEBP_RIFF_MAGIC) and head[8:12] == WEBP_WEBP_MAGIC:
        return "image/webp"
    if head.startswith(BMP_MAGIC):
        return "image/bmp"
    return None


def resolve_mime(
    explicit: str | None,
    *,
    data_url: str | None = None,
    content: bytes = b"",
    default: str,
) -> str:
    for candidate in (explicit, detect_mime_from_data_url(data_url), sniff_mime(content)):
        if candidate and candidate.strip():
            return candidate.strip().lower()
    return default
