import logging
import os
import sys
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config, database
from .api import candidates as candidates_api
from .database import dispose_db, init_db
from .services.candidate_service import referenced_cv_paths
from .services.cv_storage import default_upload_policy, sweep_orphaned_files
from .utils.error_handlers import register_exception_handlers

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Single stdout handler on the root logger; safe to call more than once."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not any(getattr(h, "_ats_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        handler._ats_handler = True
        root.addHandler(handler)


app = FastAPI(title="Applicant Tracking System API", version="1.0.0")

app.include_router(candidates_api.router)
register_exception_handlers(app)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "ATS API Server Running",
        "version": app.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


_default_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
_extra_origins = [
    origin.strip()
    for origin in os.getenv("FRONTEND_ORIGINS", "").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=[*_default_origins, *_extra_origins],
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    configure_logging(config.LOG_LEVEL)
    init_db()

    policy = default_upload_policy()
    policy.ensure_dirs()
    logger.info("CV storage at %s (temp %s)", policy.storage_root, policy.temp_root)

    if config.SWEEP_ON_STARTUP:
        # Best-effort: a failed sweep must not keep the API from booting.
        db = database.SessionLocal()
        try:
            sweep_orphaned_files(referenced_cv_paths(db), policy)
        except Exception as e:
            logger.warning("Orphan sweep on startup failed: %s", e)
        finally:
            db.close()


@app.on_event("shutdown")
def on_shutdown() -> None:
    dispose_db()
