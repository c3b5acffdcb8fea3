"""
Supabase Storage service for injected media.

Storage path: {direction}/{routing_key}/{uuid}-{sanitized_filename}
"""

import asyncio
import logging
import mimetypes
import os
import re
from typing import Optional
from uuid import uuid4

from tginject.db import supabase_admin
from tginject.errors import MediaPersistenceError
from tginject.models.inject import StoredMedia

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_BUCKET = "telegram-media"
_OCTET_STREAM = "application/octet-stream"


def get_media_bucket() -> str:
    return os.getenv("TGINJECT_MEDIA_BUCKET", DEFAULT_MEDIA_BUCKET)


def normalize_content_type(content_type: Optional[str], filename: Optional[str] = None) -> str:
    """
    Normalize a declared content type.

    Parameters (``; charset=...``) are dropped and the type is lower-cased.
    A blank or generic octet-stream type is refined from the filename
    extension when possible.
    """
    normalized = (content_type or "").split(";", 1)[0].strip().lower()
    if normalized and normalized != _OCTET_STREAM:
        return normalized

    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed

    return _OCTET_STREAM


def _sanitize_filename(filename: Optional[str], content_type: str) -> str:
    if filename:
        # Drop any client-supplied directory part
        base = re.split(r"[\\/]", filename)[-1]
        sanitized = re.sub(r"[^\w\-.]", "_", base).strip(".")
        if sanitized:
            return sanitized
    extension = mimetypes.guess_extension(content_type) or ".bin"
    return f"media{extension}"


def build_storage_path(
    direction: str,
    routing_key: str,
    filename: Optional[str],
    content_type: str,
) -> str:
    safe_key = re.sub(r"[^\w\-.]", "_", routing_key) or "default"
    return f"{direction}/{safe_key}/{uuid4().hex}-{_sanitize_filename(filename, content_type)}"


async def save_media_buffer(
    buffer: bytes,
    content_type: Optional[str],
    direction: str,
    routing_key: str,
    filename: Optional[str] = None,
) -> StoredMedia:
    """
    Upload media bytes to Supabase Storage.

    Args:
        buffer: Raw media bytes.
        content_type: Declared content type (may be None).
        direction: Top-level folder, e.g. "inbound".
        routing_key: Second-level folder, the Telegram account id.
        filename: Original filename (optional).

    Returns:
        StoredMedia with the storage path and normalized content type.

    Raises:
        MediaPersistenceError: storage is not configured or the upload failed.
    """
    if not supabase_admin:
        raise MediaPersistenceError("SUPABASE_SERVICE_KEY is required for media storage")

    normalized_type = normalize_content_type(content_type, filename)
    storage_path = build_storage_path(direction, routing_key, filename, normalized_type)
    bucket = get_media_bucket()

    def _upload() -> None:
        supabase_admin.storage.from_(bucket).upload(
            storage_path,
            buffer,
            {"content-type": normalized_type, "upsert": "true"},
        )

    try:
        await asyncio.to_thread(_upload)
    except Exception as e:
        raise MediaPersistenceError(f"Failed to upload media to storage: {e}")

    logger.info(f"Stored {len(buffer)} bytes of {normalized_type} at {bucket}/{storage_path}")
    return StoredMedia(path=storage_path, content_type=normalized_type)
