"""
Upload association

Checks attached files against one canonical policy table, stores them, and
maps each multipart field onto the record field that points at the stored
file. Superseded files are reclaimed best-effort once the record write has
gone through.
"""

import logging
import os
import re
import secrets
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from fastapi import UploadFile

from errors import FileTooLarge, InvalidFileType, UploadFailed
from storage import ObjectStore

logger = logging.getLogger(__name__)

MB = 1024 * 1024


@dataclass(frozen=True)
class FileKind:
    name: str
    extensions: Tuple[str, ...]
    mime_prefixes: Tuple[str, ...]
    max_bytes: int
    folder: str
    error: str


IMAGE = FileKind(
    "image",
    (".jpeg", ".jpg", ".png", ".gif", ".webp", ".svg"),
    ("image/",),
    5 * MB,
    "images",
    "Only image files (jpeg, jpg, png, gif, webp, svg) are allowed",
)
DOCUMENT = FileKind(
    "document",
    (".pdf", ".doc", ".docx"),
    ("application/",),
    10 * MB,
    "documents",
    "Only PDF, DOC, and DOCX files are allowed",
)
VIDEO = FileKind(
    "video",
    (".mp4", ".avi", ".mov", ".wmv", ".flv", ".mkv", ".webm"),
    ("video/",),
    100 * MB,
    "videos",
    "Only video files (mp4, avi, mov, wmv, flv, mkv, webm) are allowed",
)
FILE_KINDS = (IMAGE, DOCUMENT, VIDEO)


@dataclass(frozen=True)
class UploadField:
    target: str  # record field that receives the url
    kind: FileKind
    folder: str


UPLOAD_FIELDS: Dict[str, UploadField] = {
    "profileImage": UploadField("profileImage", IMAGE, "profiles"),
    "coverImage": UploadField("coverImage", IMAGE, "profiles"),
    "resume": UploadField("resumeUrl", DOCUMENT, "resumes"),
    "thumbnail": UploadField("thumbnailImage", IMAGE, "projects"),
    "skillIcon": UploadField("icon", IMAGE, "skills"),
}

FOLDERS = ("profiles", "projects", "skills", "resumes", "images", "videos", "documents", "others")


def sanitize_basename(filename: str) -> str:
    base = os.path.splitext(os.path.basename(filename or ""))[0]
    return re.sub(r"[^a-zA-Z0-9]", "-", base).lower()


def build_key(filename: str, folder: str = "others", timestamp: Optional[int] = None) -> str:
    """``<folder>/<epoch ms>-<random>-<sanitized name><ext>``"""
    ext = os.path.splitext(filename or "")[1].lower()
    stamp = timestamp if timestamp is not None else int(time.time() * 1000)
    return f"{folder}/{stamp}-{secrets.token_hex(3)}-{sanitize_basename(filename)}{ext}"


def _matches(kind: FileKind, filename: str, content_type: str) -> bool:
    ext = os.path.splitext(filename or "")[1].lower()
    return ext in kind.extensions and (content_type or "").startswith(kind.mime_prefixes)


def detect_kind(filename: str, content_type: str) -> FileKind:
    for kind in FILE_KINDS:
        if _matches(kind, filename, content_type):
            return kind
    raise InvalidFileType("Invalid file type. Only images, videos, and documents are allowed.")


def read_checked(upload: UploadFile, kind: FileKind) -> bytes:
    """Read an upload after checking its type, then check its size."""
    if not _matches(kind, upload.filename, upload.content_type):
        raise InvalidFileType(kind.error)
    data = upload.file.read(kind.max_bytes + 1)
    if len(data) > kind.max_bytes:
        raise FileTooLarge(f"File too large. Maximum size for {kind.name} files is {kind.max_bytes // MB}MB")
    return data


def store_file(store: ObjectStore, upload: UploadFile, data: bytes, folder: str) -> str:
    key = build_key(upload.filename, folder)
    url = store.put(key, data, upload.content_type)
    logger.info("Stored %s (%d bytes) as %s", upload.filename, len(data), key)
    return url


def attach_uploads(store: ObjectStore, files: Mapping[str, Optional[UploadFile]]) -> Dict[str, str]:
    """Store every attached file and return ``{record field: url}``.

    All files are checked before anything is stored. If one store write
    fails, files already stored by this call are discarded and UploadFailed
    propagates, so the caller never mutates its record.
    """
    checked = []
    for name, upload in files.items():
        if upload is None or not upload.filename:
            continue
        field = UPLOAD_FIELDS[name]
        checked.append((field, upload, read_checked(upload, field.kind)))

    urls: Dict[str, str] = {}
    try:
        for field, upload, data in checked:
            urls[field.target] = store_file(store, upload, data, field.folder)
    except UploadFailed:
        discard_files(store, urls.values())
        raise
    return urls


def superseded(previous: Mapping, changes: Mapping[str, str]) -> List[str]:
    """Urls the record pointed at before ``changes`` replaced them."""
    return [previous[f] for f, url in changes.items() if previous.get(f) and previous[f] != url]


def discard_files(store: ObjectStore, urls: Iterable[str]) -> None:
    """Delete stored files without failing the request."""
    for url in urls:
        if not store.owns(url):
            continue
        try:
            store.delete(url)
        except UploadFailed:
            logger.warning("Could not reclaim %s; leaving it orphaned", url)
