"""
On-disk CV storage: where files live, how they are named, and how they move.

Uploads land in the temp directory first (see ``cv_upload.receive_upload``).
Once the owning candidate row exists, ``finalize_upload`` renames the temp file
to ``<candidateId>_<millis>_<name><ext>`` under the CV directory. Any failure
after a file exists on disk goes through ``remove_if_exists``.
"""
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path

from .. import config

logger = logging.getLogger(__name__)

_TEMP_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9.]")
_FINAL_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9]")
_UNDERSCORE_RUNS = re.compile(r"_+")


@dataclass(frozen=True)
class StoragePaths:
    cv_dir: Path
    temp_dir: Path


@dataclass(frozen=True)
class UploadPolicy:
    allowed_mime_types: frozenset[str]
    allowed_extensions: frozenset[str]
    max_bytes: int
    storage_root: Path
    temp_root: Path
    # Read size for streaming uploads to disk.
    chunk_size: int = field(default=1024 * 1024)

    def ensure_dirs(self) -> None:
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.temp_root.mkdir(parents=True, exist_ok=True)


def storage_paths() -> StoragePaths:
    return StoragePaths(
        cv_dir=Path(config.CV_STORAGE_DIR),
        temp_dir=Path(config.TEMP_UPLOAD_DIR),
    )


def default_upload_policy() -> UploadPolicy:
    paths = storage_paths()
    return UploadPolicy(
        allowed_mime_types=frozenset(config.ALLOWED_CV_CONTENT_TYPES),
        allowed_extensions=frozenset(config.ALLOWED_CV_EXTENSIONS),
        max_bytes=config.MAX_CV_BYTES,
        storage_root=paths.cv_dir,
        temp_root=paths.temp_dir,
    )


def get_upload_policy() -> UploadPolicy:
    """FastAPI dependency; tests override it to point at a tmp dir."""
    return default_upload_policy()


def now_ms() -> int:
    return int(time.time() * 1000)


def file_extension(filename: str) -> str:
    """Lower-cased suffix including the dot, or '' if the name has none."""
    idx = filename.rfind(".")
    if idx < 0:
        return ""
    return filename[idx:].lower()


def temp_file_name(original_name: str, now: int | None = None) -> str:
    ts = now_ms() if now is None else now
    return f"temp_{ts}_{_TEMP_NAME_UNSAFE.sub('_', original_name)}"


def final_file_name(owner_id: int, original_name: str, now: int | None = None) -> str:
    """
    ``<ownerId>_<millis>_<base><ext>`` where base is the lower-cased original
    stem with non-alphanumerics turned into single underscores; ext keeps the
    original suffix as sent.
    """
    ts = now_ms() if now is None else now
    idx = original_name.rfind(".")
    stem, ext = (original_name[:idx], original_name[idx:]) if idx >= 0 else (original_name, "")
    base = _UNDERSCORE_RUNS.sub("_", _FINAL_NAME_UNSAFE.sub("_", stem.lower()))
    return f"{owner_id}_{ts}_{base}{ext}"


def finalize_upload(temp_path: Path | str, owner_id: int, original_name: str, policy: UploadPolicy) -> Path:
    """
    Move a received temp file to its permanent, owner-scoped name.

    Must be called once per temp file: a second call fails with
    FileNotFoundError because the source is gone. On rename failure the temp
    file is removed (best-effort) and the rename error propagates.
    """
    temp_path = Path(temp_path)
    policy.storage_root.mkdir(parents=True, exist_ok=True)
    final_path = policy.storage_root / final_file_name(owner_id, original_name)

    try:
        temp_path.rename(final_path)
    except OSError as e:
        logger.error("Failed to finalize %s for candidate %s: %s", temp_path, owner_id, e)
        remove_if_exists(temp_path)
        raise

    logger.info("Finalized CV for candidate %s: %s", owner_id, final_path.name)
    return final_path


def remove_if_exists(path: Path | str | None) -> None:
    """Best-effort delete. Never raises: it runs next to an error that must not be masked."""
    if not path:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.error("Error deleting file %s: %s", path, e)


def sweep_orphaned_files(
    referenced_paths: set[str],
    policy: UploadPolicy,
    older_than_s: int | None = None,
) -> list[Path]:
    """
    Delete CVs that no candidate row points at and temp files, in both cases
    only once they are older than ``older_than_s`` so in-flight uploads are
    left alone. Returns the removed paths.
    """
    max_age = config.ORPHAN_MAX_AGE_S if older_than_s is None else older_than_s
    referenced = {str(Path(p).resolve()) for p in referenced_paths if p}
    cutoff = time.time() - max_age
    removed: list[Path] = []

    def _is_stale(path: Path) -> bool:
        try:
            return path.is_file() and path.stat().st_mtime <= cutoff
        except OSError:
            return False

    if policy.storage_root.is_dir():
        for path in policy.storage_root.iterdir():
            if str(path.resolve()) in referenced or not _is_stale(path):
                continue
            remove_if_exists(path)
            removed.append(path)

    if policy.temp_root.is_dir():
        for path in policy.temp_root.iterdir():
            if _is_stale(path):
                remove_if_exists(path)
                removed.append(path)

    if removed:
        logger.warning("Orphan sweep removed %d file(s)", len(removed))
    return removed
