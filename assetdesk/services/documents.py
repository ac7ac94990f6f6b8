# assetdesk/services/documents.py
from __future__ import annotations

import hashlib
import os
import uuid
from dataclasses import dataclass

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..errors import PayloadTooLarge, ValidationFailed
from ..models import DocumentSubject


# =========================================================
# Types
# =========================================================
@dataclass(frozen=True)
class StoredFile:
    storage_key: str
    sha256: str
    size: int


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    mime_type: str
    data: bytes


_EXTENSIONS = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def _sniff_mime(head: bytes) -> str | None:
    if head.startswith(b"%PDF-"):
        return "application/pdf"
    if head.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    return None


# =========================================================
# Storage helpers
# =========================================================
def _docs_storage_dir() -> str:
    """
    Local storage root.
    Priority:
      1) Flask config DOCUMENT_STORAGE_DIR
      2) Env DOCUMENT_STORAGE_DIR
      3) instance_path/uploads
    """
    base = current_app.config.get("DOCUMENT_STORAGE_DIR") or os.getenv("DOCUMENT_STORAGE_DIR")
    if not base:
        base = os.path.join(current_app.instance_path, "uploads")

    os.makedirs(base, exist_ok=True)
    return base


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def storage_key_for(subject: DocumentSubject, subject_id: int, mime_type: str) -> str:
    """
    Example:
      asset/12/3f2a...c9.pdf
    The stored name is random; the original filename only lives in the DB row.
    """
    return f"{subject.value}/{subject_id}/{uuid.uuid4().hex}{_EXTENSIONS.get(mime_type, '')}"


def _abs_path(storage_key: str) -> str:
    base = os.path.realpath(_docs_storage_dir())
    path = os.path.realpath(os.path.join(base, storage_key))
    if os.path.commonpath([base, path]) != base:
        raise ValueError("storage key escapes the storage directory")
    return path


# =========================================================
# Upload validation
# =========================================================
def read_upload(
    file: FileStorage | None,
    *,
    declared_length: int | None = None,
    limit: int | None = None,
    allowed: tuple[str, ...] | None = None,
) -> UploadedFile:
    """
    Check size and type of an uploaded file before anything is stored.

    The declared request length is checked first; the stream is then read at
    most limit + 1 bytes (MAX_UPLOAD_BYTES unless given) so an undeclared
    oversize body is still refused without buffering all of it.
    """
    if file is None or not (file.filename or "").strip():
        raise ValidationFailed("No file was uploaded.", errors={"file": ["A file is required."]}, field="file")

    if limit is None:
        limit = int(current_app.config.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
    too_large = PayloadTooLarge(f"File exceeds the {limit // (1024 * 1024) or 1} MB limit.", field="file")

    if declared_length is not None and declared_length > limit + 256 * 1024:
        raise too_large
    if file.content_length and file.content_length > limit:
        raise too_large

    data = file.stream.read(limit + 1)
    if len(data) > limit:
        raise too_large
    if not data:
        raise ValidationFailed("Uploaded file is empty.", errors={"file": ["File is empty."]}, field="file")

    if allowed is None:
        allowed = tuple(current_app.config.get("ALLOWED_UPLOAD_MIME_TYPES") or _EXTENSIONS)
    declared = (file.mimetype or "").lower()
    sniffed = _sniff_mime(data[:16])
    if declared not in allowed or sniffed != declared:
        raise ValidationFailed(
            "File type not allowed.",
            errors={"file": [f"Allowed types: {', '.join(allowed)}."]},
            field="file",
        )

    filename = secure_filename(file.filename) or f"upload{_EXTENSIONS.get(declared, '')}"
    return UploadedFile(filename=filename[:255], mime_type=declared, data=data)


# =========================================================
# Store / load
# =========================================================
def store_bytes(storage_key: str, data: bytes) -> StoredFile:
    abs_path = _abs_path(storage_key)
    os.makedirs(os.path.dirname(abs_path), exist_ok=True)

    with open(abs_path, "wb") as f:
        f.write(data)

    return StoredFile(storage_key=storage_key, sha256=sha256_hex(data), size=len(data))


def load_bytes(storage_key: str) -> bytes:
    with open(_abs_path(storage_key), "rb") as f:
        return f.read()


def remove_file(storage_key: str) -> None:
    """Best effort cleanup for a file whose DB row never committed."""
    try:
        os.remove(_abs_path(storage_key))
    except OSError:
        current_app.logger.warning("Could not remove orphaned upload %s", storage_key)


# =========================================================
# Images (asset pictures, avatars)
# =========================================================
IMAGE_PREFIX = "images"


def read_image_upload(file: FileStorage | None, *, declared_length: int | None = None) -> UploadedFile:
    cfg = current_app.config
    return read_upload(
        file,
        declared_length=declared_length,
        limit=int(cfg.get("MAX_IMAGE_BYTES") or 5 * 1024 * 1024),
        allowed=tuple(cfg.get("ALLOWED_IMAGE_MIME_TYPES") or ("image/jpeg", "image/png", "image/webp")),
    )


def image_key_for(kind: str, owner_id: int, mime_type: str) -> str:
    """images/avatar/7/9b1e...04.png"""
    return f"{IMAGE_PREFIX}/{kind}/{owner_id}/{uuid.uuid4().hex}{_EXTENSIONS.get(mime_type, '')}"


def image_mime_type(storage_key: str) -> str | None:
    ext = os.path.splitext(storage_key)[1].lower()
    return next((mime for mime, known in _EXTENSIONS.items() if known == ext and mime.startswith("image/")), None)
