"""
Upload filter and temp-file receiver for candidate CVs.

A file is checked by MIME type and extension before any byte is written, and
by size while it streams. Nothing is left on disk when a check fails.
"""
import logging
from dataclasses import dataclass
from pathlib import Path

import anyio
from fastapi import UploadFile

from ..utils.error_handlers import UploadLimitError, UploadRejectedError, get_error_message
from ..utils.validation import sanitize_filename
from .cv_storage import UploadPolicy, file_extension, now_ms, remove_if_exists, temp_file_name

logger = logging.getLogger(__name__)

# Retries when two uploads with the same name arrive in the same millisecond.
_TEMP_NAME_ATTEMPTS = 5


@dataclass(frozen=True)
class IncomingFile:
    original_name: str
    mime_type: str
    size_bytes: int
    temp_path: Path


def check_file_type(mime_type: str | None, filename: str, policy: UploadPolicy) -> None:
    """Both the declared MIME type and the extension must be allowed."""
    ext = file_extension(filename)
    if (mime_type or "") not in policy.allowed_mime_types or ext not in policy.allowed_extensions:
        logger.warning("Rejected upload %r (content_type=%s)", filename, mime_type)
        allowed = ", ".join(sorted(policy.allowed_extensions))
        raise UploadRejectedError(
            f"Invalid file type. Only {allowed} files are allowed.",
        )


def check_size(size_bytes: int, policy: UploadPolicy) -> None:
    if size_bytes > policy.max_bytes:
        logger.warning("Rejected upload: %d bytes exceeds limit of %d", size_bytes, policy.max_bytes)
        max_mb = policy.max_bytes // (1024 * 1024)
        raise UploadLimitError(
            f"File too large. Maximum size is {max_mb}MB." if max_mb else get_error_message("file_too_large"),
        )


def _open_temp_file(original_name: str, policy: UploadPolicy):
    policy.ensure_dirs()
    ts = now_ms()
    for attempt in range(_TEMP_NAME_ATTEMPTS):
        path = policy.temp_root / temp_file_name(original_name, now=ts + attempt)
        try:
            return path, open(path, "xb")
        except FileExistsError:
            continue
    raise FileExistsError(f"Could not allocate a temp name for {original_name!r}")


async def receive_upload(upload: UploadFile, policy: UploadPolicy) -> IncomingFile:
    """
    Stream an accepted upload into the temp directory.

    Raises UploadRejectedError / UploadLimitError for policy violations and lets
    OSError propagate for disk failures; in every case the partial file is
    removed and the upload handle is closed. Disk work runs in worker threads.
    """
    try:
        original_name = sanitize_filename(upload.filename or "")
        check_file_type(upload.content_type, original_name, policy)
        # Starlette knows the size when the part was spooled; reject early if so.
        if upload.size is not None:
            check_size(upload.size, policy)

        temp_path, out = await anyio.to_thread.run_sync(_open_temp_file, original_name, policy)
        size = 0
        try:
            try:
                while True:
                    chunk = await upload.read(policy.chunk_size)
                    if not chunk:
                        break
                    size += len(chunk)
                    check_size(size, policy)
                    await anyio.to_thread.run_sync(out.write, chunk)
            finally:
                with anyio.CancelScope(shield=True):
                    await anyio.to_thread.run_sync(out.close)
        except BaseException:
            # Shielded so a cancelled request still cleans up.
            with anyio.CancelScope(shield=True):
                await anyio.to_thread.run_sync(remove_if_exists, temp_path)
            raise
    finally:
        await upload.close()

    logger.debug("Received %s (%d bytes) into %s", original_name, size, temp_path.name)
    return IncomingFile(
        original_name=original_name,
        mime_type=upload.content_type or "",
        size_bytes=size,
        temp_path=temp_path,
    )
