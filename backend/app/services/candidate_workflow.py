"""
Candidate create/update flows with an optional CV upload.

The stored file name embeds the candidate id, which only exists after the row
is inserted, so a create with a CV runs as:

    NO_FILE -> TEMP_RECEIVED -> ENTITY_CREATED -> FINALIZED -> ENTITY_UPDATED

and an update as NO_FILE -> TEMP_RECEIVED -> FINALIZED -> ENTITY_UPDATED.

Each step returns a ``StepResult``; on failure the lifecycle deletes whatever
file is currently on disk for this request (temp or final) before the error is
raised. A row created before a later step failed is kept without a CV and the
error carries ``{"candidateId": ..., "partial": true}``.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import anyio
from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.candidate import Candidate
from ..utils.error_handlers import AppError, get_error_message, handle_database_error
from . import candidate_service
from .cv_storage import UploadPolicy, finalize_upload, remove_if_exists
from .cv_upload import receive_upload

logger = logging.getLogger(__name__)


class UploadState(str, Enum):
    NO_FILE = "no_file"
    TEMP_RECEIVED = "temp_received"
    ENTITY_CREATED = "entity_created"
    FINALIZED = "finalized"
    ENTITY_UPDATED = "entity_updated"
    FAILED = "failed"
    FAILED_PARTIAL_ENTITY = "failed_partial_entity"


@dataclass
class StepResult:
    ok: bool
    value: Any = None
    error: Exception | None = None


async def run_step(fn: Callable[..., Any], *args) -> StepResult:
    """Run a blocking step (DB commit, file rename) in a worker thread."""
    try:
        return StepResult(ok=True, value=await anyio.to_thread.run_sync(fn, *args))
    except Exception as e:
        return StepResult(ok=False, error=e)


def _to_app_error(error: Exception, operation: str) -> AppError:
    if isinstance(error, AppError):
        return error
    if isinstance(error, SQLAlchemyError):
        return handle_database_error(error, operation)
    if isinstance(error, OSError):
        logger.error("File error while %s: %s", operation, error)
        return AppError(get_error_message("file_processing_failed"), status_code=500)
    logger.exception("Unexpected error while %s", operation, exc_info=error)
    return AppError(get_error_message("internal_error"), status_code=500)


@dataclass
class UploadLifecycle:
    """Tracks which file this request owns on disk and where the flow stopped."""

    state: UploadState = UploadState.NO_FILE
    file_on_disk: Path | None = None
    candidate_id: int | None = None
    history: list[UploadState] = field(default_factory=lambda: [UploadState.NO_FILE])

    def advance(self, state: UploadState, *, file_on_disk: Path | None = None, candidate_id: int | None = None) -> None:
        self.state = state
        self.history.append(state)
        if file_on_disk is not None:
            self.file_on_disk = file_on_disk
        if candidate_id is not None:
            self.candidate_id = candidate_id
        logger.debug("CV upload -> %s (candidate=%s file=%s)", state.value, self.candidate_id, self.file_on_disk)

    def compensate(self) -> None:
        remove_if_exists(self.file_on_disk)
        self.file_on_disk = None

    async def fail(self, result: StepResult, operation: str, *, partial: bool = False) -> AppError:
        """Run the compensation for the current state and build the error to raise."""
        await anyio.to_thread.run_sync(self.compensate)
        self.advance(UploadState.FAILED_PARTIAL_ENTITY if partial else UploadState.FAILED)
        app_error = _to_app_error(result.error, operation)
        if partial and self.candidate_id is not None:
            app_error.details = {"candidateId": self.candidate_id, "partial": True}
        return app_error


async def create_candidate_with_cv(
    db: Session,
    data: dict,
    upload: UploadFile | None,
    policy: UploadPolicy,
) -> Candidate:
    if upload is None:
        step = await run_step(candidate_service.create_candidate, db, data)
        if not step.ok:
            raise _to_app_error(step.error, "creating candidate")
        return step.value

    lifecycle = UploadLifecycle()
    # Filter rejections happen here, before anything else is mutated.
    incoming = await receive_upload(upload, policy)
    lifecycle.advance(UploadState.TEMP_RECEIVED, file_on_disk=incoming.temp_path)

    step = await run_step(candidate_service.create_candidate, db, data)
    if not step.ok:
        raise await lifecycle.fail(step, "creating candidate")
    candidate = step.value
    lifecycle.advance(UploadState.ENTITY_CREATED, candidate_id=candidate.id)

    step = await run_step(finalize_upload, incoming.temp_path, candidate.id, incoming.original_name, policy)
    if not step.ok:
        raise await lifecycle.fail(step, "storing CV", partial=True)
    final_path = step.value
    lifecycle.advance(UploadState.FINALIZED, file_on_disk=final_path)

    step = await run_step(candidate_service.update_candidate, db, candidate, {}, str(final_path))
    if not step.ok:
        raise await lifecycle.fail(step, "linking CV to candidate", partial=True)
    lifecycle.advance(UploadState.ENTITY_UPDATED)
    return step.value


async def update_candidate_with_cv(
    db: Session,
    candidate: Candidate,
    changes: dict,
    upload: UploadFile | None,
    policy: UploadPolicy,
) -> Candidate:
    if upload is None:
        step = await run_step(candidate_service.update_candidate, db, candidate, changes)
        if not step.ok:
            raise _to_app_error(step.error, "updating candidate")
        return step.value

    lifecycle = UploadLifecycle(candidate_id=candidate.id)
    previous_path = candidate.cv_file_path

    incoming = await receive_upload(upload, policy)
    lifecycle.advance(UploadState.TEMP_RECEIVED, file_on_disk=incoming.temp_path)

    step = await run_step(finalize_upload, incoming.temp_path, candidate.id, incoming.original_name, policy)
    if not step.ok:
        raise await lifecycle.fail(step, "storing CV")
    final_path = step.value
    lifecycle.advance(UploadState.FINALIZED, file_on_disk=final_path)

    # The previous CV stays on disk until the new reference is committed.
    step = await run_step(candidate_service.update_candidate, db, candidate, changes, str(final_path))
    if not step.ok:
        raise await lifecycle.fail(step, "updating candidate")
    lifecycle.advance(UploadState.ENTITY_UPDATED)

    if previous_path and previous_path != str(final_path):
        await anyio.to_thread.run_sync(remove_if_exists, previous_path)
    return step.value
