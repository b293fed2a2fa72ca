import json
import logging
import mimetypes
from datetime import date, datetime
from pathlib import Path

import anyio
from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from .. import config
from ..database import get_db
from ..models.candidate import Candidate
from ..schemas.candidate import CandidateCreate, CandidateUpdate
from ..services import candidate_service
from ..services.candidate_workflow import create_candidate_with_cv, update_candidate_with_cv
from ..services.cv_storage import UploadPolicy, get_upload_policy, remove_if_exists
from ..utils.error_handlers import (
    NotFoundError,
    UploadLimitError,
    ValidationError,
    get_error_message,
)
from ..utils.validation import (
    format_pydantic_errors,
    parse_json_list_field,
    validate_candidate_id,
    validate_integer_field,
    validate_search_term,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/candidates", tags=["Candidates"])

CV_FIELD = "cv"
_SCALAR_KEYS = ("firstName", "lastName", "email", "phone", "address")
_LIST_KEYS = ("education", "workExperience")
_CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def _iso(value) -> str | None:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _public_candidate(c: Candidate) -> dict:
    # Keep keys aligned with the frontend's camelCase types.
    return {
        "id": c.id,
        "firstName": c.first_name,
        "lastName": c.last_name,
        "email": c.email,
        "phone": c.phone,
        "address": c.address,
        "cvFilePath": c.cv_file_path,
        "createdAt": _iso(c.created_at),
        "updatedAt": _iso(c.updated_at),
        "education": [
            {
                "id": e.id,
                "degree": e.degree,
                "institution": e.institution,
                "graduationYear": e.graduation_year,
            }
            for e in c.education
        ],
        "workExperience": [
            {
                "id": w.id,
                "company": w.company,
                "position": w.position,
                "startDate": _iso(w.start_date),
                "endDate": _iso(w.end_date),
                "description": w.description,
            }
            for w in c.work_experience
        ],
    }


def _ok(data, message: str | None = None, meta: dict | None = None) -> dict:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    if meta is not None:
        body["meta"] = meta
    return body


async def _close_all(files) -> None:
    for f in files:
        await f.close()


async def _read_request(request: Request) -> tuple[dict, UploadFile | None]:
    """
    Pull the candidate payload and the optional CV out of a multipart form (or
    a plain JSON body). Nested lists arrive in forms as JSON strings.
    """
    content_type = (request.headers.get("content-type") or "").lower()
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError(get_error_message("invalid_form_data"))
        if not isinstance(body, dict):
            raise ValidationError(get_error_message("invalid_form_data"))
        return body, None

    form = await request.form()
    files = [(key, value) for key, value in form.multi_items() if isinstance(value, UploadFile)]
    if len(files) > 1 or (files and files[0][0] != CV_FIELD):
        await _close_all(f for _, f in files)
        raise UploadLimitError(get_error_message("unexpected_file"))
    upload = files[0][1] if files else None
    if upload is not None and not upload.filename:
        # An empty <input type="file"> still posts a part with no name.
        await upload.close()
        upload = None

    try:
        payload: dict = {}
        raw_bundle = form.get("candidateData")
        if isinstance(raw_bundle, str) and raw_bundle.strip():
            try:
                bundle = json.loads(raw_bundle)
            except json.JSONDecodeError:
                raise ValidationError(get_error_message("invalid_form_data"))
            if not isinstance(bundle, dict):
                raise ValidationError(get_error_message("invalid_form_data"))
            payload.update(bundle)
        for key in _SCALAR_KEYS:
            value = form.get(key)
            if isinstance(value, str):
                payload[key] = value
        for key in _LIST_KEYS:
            value = form.get(key)
            if isinstance(value, str):
                payload[key] = parse_json_list_field(value, key)
    except ValidationError:
        if upload is not None:
            await upload.close()
        raise
    return payload, upload


def _validate(model, payload: dict):
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            get_error_message("validation_error"),
            details=format_pydantic_errors(e),
            hint="Please check the provided data",
        )


def _load_candidate(db: Session, raw_id: str) -> Candidate:
    candidate = candidate_service.get_candidate(db, validate_candidate_id(raw_id))
    if candidate is None:
        raise NotFoundError(get_error_message("candidate_not_found"))
    return candidate


@router.get("")
def list_candidates(
    page: str | None = None,
    limit: str | None = None,
    search: str | None = None,
    db: Session = Depends(get_db),
):
    page_num = validate_integer_field(page, "page", min_value=1, default=1)
    page_size = validate_integer_field(
        limit, "limit", min_value=1, max_value=config.MAX_PAGE_SIZE, default=config.DEFAULT_PAGE_SIZE
    )
    term = validate_search_term(search)

    rows, total, total_pages = candidate_service.list_candidates(db, page=page_num, limit=page_size, search=term)
    message = (
        f'Found {total} candidates matching "{term}"' if term else "Candidates retrieved successfully"
    )
    return _ok(
        [_public_candidate(c) for c in rows],
        message,
        meta={"page": page_num, "limit": page_size, "total": total, "totalPages": total_pages},
    )


@router.get("/{candidate_id}")
def get_candidate(candidate_id: str, db: Session = Depends(get_db)):
    candidate = _load_candidate(db, candidate_id)
    return _ok(_public_candidate(candidate), "Candidate retrieved successfully")


@router.post("", status_code=201)
async def create_candidate(
    request: Request,
    db: Session = Depends(get_db),
    policy: UploadPolicy = Depends(get_upload_policy),
):
    payload, upload = await _read_request(request)
    try:
        data = _validate(CandidateCreate, payload)
    except ValidationError:
        if upload is not None:
            await upload.close()
        raise

    candidate = await create_candidate_with_cv(db, data.model_dump(), upload, policy)
    message = "Candidate created successfully with CV upload" if upload else "Candidate created successfully"
    # Serializing touches lazy-loaded relationships, so it runs off the event loop too.
    return _ok(await anyio.to_thread.run_sync(_public_candidate, candidate), message)


@router.put("/{candidate_id}")
async def update_candidate(
    candidate_id: str,
    request: Request,
    db: Session = Depends(get_db),
    policy: UploadPolicy = Depends(get_upload_policy),
):
    payload, upload = await _read_request(request)
    try:
        candidate = await anyio.to_thread.run_sync(_load_candidate, db, candidate_id)
        # Blank required fields mean "unchanged" on a partial update.
        for key in ("firstName", "lastName", "email"):
            value = payload.get(key, "x")
            if value is None or (isinstance(value, str) and not value.strip()):
                payload.pop(key)
        changes = _validate(CandidateUpdate, payload).changes()
    except (ValidationError, NotFoundError):
        if upload is not None:
            await upload.close()
        raise

    candidate = await update_candidate_with_cv(db, candidate, changes, upload, policy)
    message = "Candidate updated successfully with new CV" if upload else "Candidate updated successfully"
    return _ok(await anyio.to_thread.run_sync(_public_candidate, candidate), message)


@router.delete("/{candidate_id}")
def delete_candidate(candidate_id: str, db: Session = Depends(get_db)):
    candidate = _load_candidate(db, candidate_id)
    cv_path = candidate_service.delete_candidate(db, candidate)
    # Row is gone; the file goes after so a failed delete never strands a reference.
    remove_if_exists(cv_path)
    return _ok(None, "Candidate deleted successfully")


@router.get("/{candidate_id}/cv")
def download_cv(candidate_id: str, db: Session = Depends(get_db)):
    candidate = _load_candidate(db, candidate_id)
    if not candidate.cv_file_path:
        raise NotFoundError(get_error_message("cv_not_found"))

    path = Path(candidate.cv_file_path)
    if not path.is_file():
        logger.error("CV file missing on server: %s", path)
        raise NotFoundError(get_error_message("cv_missing_on_disk"))

    media_type = _CONTENT_TYPES.get(path.suffix.lower()) or mimetypes.guess_type(path.name)[0]
    return FileResponse(
        path,
        media_type=media_type or "application/octet-stream",
        filename=path.name,
    )
