"""Collect project files as UploadedFile records."""

import logging
import os

from config.defaults import DEFAULTS
from core.state import UploadedFile

logger = logging.getLogger(__name__)


def decode_upload(data):
    """Decode raw bytes as UTF-8 text, or return None for binary content."""
    if b"\x00" in data:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def collect_directory(root, ignored_dirs=None, max_bytes=None):
    """Walk `root` and return (files, skipped) in sorted path order.

    Paths are relative to root with forward slashes. Binary, oversized and
    unreadable files are skipped and reported.
    """
    if not os.path.isdir(root):
        raise ValueError(f"Project directory does not exist: {root}")
    ignored = set(DEFAULTS["ignored_dirs"] if ignored_dirs is None else ignored_dirs)
    max_bytes = DEFAULTS["max_file_bytes"] if max_bytes is None else max_bytes

    files, skipped = [], []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in ignored)
        for name in sorted(filenames):
            full = os.path.join(dirpath, name)
            rel = os.path.relpath(full, root).replace(os.sep, "/")
            if os.path.getsize(full) > max_bytes:
                skipped.append(rel)
                continue
            with open(full, "rb") as fp:
                content = decode_upload(fp.read())
            if content is None:
                skipped.append(rel)
                continue
            files.append(UploadedFile(path=rel, content=content))

    if skipped:
        logger.info("Skipped %d binary or oversized file(s)", len(skipped))
    return files, skipped


def files_from_payload(items):
    """Build UploadedFiles from JSON `[{"path": ..., "content": ...}]`."""
    if not isinstance(items, list):
        raise ValueError("files must be a list of {path, content} objects")
    files = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"files[{i}] must be an object")
        path = item.get("path")
        content = item.get("content")
        if not isinstance(path, str) or not path.strip():
            raise ValueError(f"files[{i}].path must be a non-empty string")
        if not isinstance(content, str):
            raise ValueError(f"files[{i}].content must be a string")
        files.append(UploadedFile(path=path, content=content))
    return files


def files_from_uploads(uploads):
    """Build UploadedFiles from multipart uploads.

    Returns (files, skipped). Binary uploads are skipped by name; an upload
    without a filename raises ValueError.
    """
    files, skipped = [], []
    for upload in uploads:
        path = (upload.filename or "").strip()
        if not path:
            raise ValueError("every uploaded file needs a filename")
        content = decode_upload(upload.read())
        if content is None:
            skipped.append(path)
            continue
        files.append(UploadedFile(path=path, content=content))
    return files, skipped
