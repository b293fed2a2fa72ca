import logging
import math

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ..models.candidate import Candidate
from ..models.education import Education
from ..models.work_experience import WorkExperience

logger = logging.getLogger(__name__)

_SCALAR_FIELDS = ("first_name", "last_name", "email", "phone", "address")


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _search_clause(term: str):
    pattern = _like_pattern(term)

    def match(column):
        return column.ilike(pattern, escape="\\")

    return or_(
        match(Candidate.first_name),
        match(Candidate.last_name),
        match(Candidate.email),
        Candidate.education.any(or_(match(Education.degree), match(Education.institution))),
        Candidate.work_experience.any(or_(match(WorkExperience.company), match(WorkExperience.position))),
    )


def list_candidates(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
) -> tuple[list[Candidate], int, int]:
    """
    Newest first; ties on created_at fall back to id so pages stay stable.
    Returns (rows, total, total_pages).
    """
    query = db.query(Candidate)
    if search:
        query = query.filter(_search_clause(search))

    total = query.order_by(None).count()
    rows = (
        query.options(selectinload(Candidate.education), selectinload(Candidate.work_experience))
        .order_by(Candidate.created_at.desc(), Candidate.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = math.ceil(total / limit) if limit else 0
    return rows, total, total_pages


def get_candidate(db: Session, candidate_id: int) -> Candidate | None:
    return (
        db.query(Candidate)
        .options(selectinload(Candidate.education), selectinload(Candidate.work_experience))
        .filter(Candidate.id == candidate_id)
        .first()
    )


def _education_rows(items: list[dict]) -> list[Education]:
    return [
        Education(
            degree=e["degree"],
            institution=e["institution"],
            graduation_year=e.get("graduation_year"),
        )
        for e in items
    ]


def _work_rows(items: list[dict]) -> list[WorkExperience]:
    return [
        WorkExperience(
            company=w["company"],
            position=w["position"],
            start_date=w["start_date"],
            end_date=w.get("end_date"),
            description=w.get("description"),
        )
        for w in items
    ]


def create_candidate(db: Session, data: dict, cv_file_path: str | None = None) -> Candidate:
    """Insert a candidate with its nested rows. Rolls back and re-raises on failure."""
    candidate = Candidate(
        **{k: data.get(k) for k in _SCALAR_FIELDS},
        cv_file_path=cv_file_path,
        education=_education_rows(data.get("education") or []),
        work_experience=_work_rows(data.get("work_experience") or []),
    )
    try:
        db.add(candidate)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(candidate)
    logger.info("Created candidate %s", candidate.id)
    return candidate


def update_candidate(
    db: Session,
    candidate: Candidate,
    changes: dict,
    cv_file_path: str | None = None,
) -> Candidate:
    """
    Apply a partial update. Nested collections are replaced only when present
    in ``changes``. Rolls back and re-raises on failure.
    """
    for key in _SCALAR_FIELDS:
        if key in changes:
            value = changes[key]
            # Required columns are never blanked by a partial update.
            if value is None and key in ("first_name", "last_name", "email"):
                continue
            setattr(candidate, key, value)
    if changes.get("education") is not None:
        candidate.education = _education_rows(changes["education"])
    if changes.get("work_experience") is not None:
        candidate.work_experience = _work_rows(changes["work_experience"])
    if cv_file_path:
        candidate.cv_file_path = cv_file_path

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(candidate)
    return candidate


def delete_candidate(db: Session, candidate: Candidate) -> str | None:
    """Delete the row (and nested rows). Returns the CV path it referenced."""
    candidate_id, cv_path = candidate.id, candidate.cv_file_path
    try:
        db.delete(candidate)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Deleted candidate %s", candidate_id)
    return cv_path


def referenced_cv_paths(db: Session) -> set[str]:
    rows = db.query(Candidate.cv_file_path).filter(Candidate.cv_file_path.isnot(None)).all()
    return {r[0] for r in rows}
