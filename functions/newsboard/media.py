"""
Helpers for naming, validating and locating uploaded media.
"""

from __future__ import annotations

import mimetypes
import os
import uuid
from typing import Optional
from urllib.parse import urlparse

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "heic"}
VIDEO_EXTENSIONS = {"mp4", "mov", "avi", "webm"}


class MediaRejected(ValueError):
    """Raised when an upload is not an acceptable image or video."""


def file_extension(filename: str) -> str:
    _, ext = os.path.splitext(filename or "")
    return ext.lstrip(".").lower()


def build_media_path(prefix: str, filename: str) -> str:
    ext = file_extension(filename)
    name = uuid.uuid4().hex
    if ext:
        name = f"{name}.{ext}"
    prefix = (prefix or "").strip("/")
    return f"{prefix}/{name}" if prefix else name


def guess_content_type(filename: str, declared: Optional[str] = None) -> str:
    if declared and declared != "application/octet-stream":
        return declared
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or "application/octet-stream"


def validate_upload(
    filename: str,
    content_type: Optional[str],
    size: int,
    max_bytes: int,
    *,
    allow_video: bool = True,
) -> str:
    """
    Check an upload and return the content type to store it with.

    Raises MediaRejected for empty, oversized or non-media files.
    """
    if size <= 0:
        raise MediaRejected(f"{filename or 'upload'} is empty")
    if size > max_bytes:
        raise MediaRejected(f"{filename or 'upload'} is larger than {max_bytes} bytes")

    resolved = guess_content_type(filename, content_type)
    ext = file_extension(filename)
    is_image = resolved.startswith("image/") or ext in IMAGE_EXTENSIONS
    is_video = resolved.startswith("video/") or ext in VIDEO_EXTENSIONS
    if is_image or (allow_video and is_video):
        return resolved
    kinds = "images or videos" if allow_video else "images"
    raise MediaRejected(f"Only {kinds} can be uploaded, got {resolved}")


def is_video_url(url: str) -> bool:
    path = urlparse(url or "").path
    return file_extension(path) in VIDEO_EXTENSIONS


def path_from_public_url(url: str, base_url: str) -> Optional[str]:
    """Recover the storage path of a URL produced by StorageClient.public_url."""
    prefix = base_url.rstrip("/") + "/"
    if not url or not url.startswith(prefix):
        return None
    path = urlparse(url[len(prefix) :]).path
    return path or None
