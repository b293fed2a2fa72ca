"""Repo-root Uvicorn entrypoint for the ATS API.

    uvicorn app.main:app --reload --port 8000

Re-exports the FastAPI app defined in `backend/app/main.py` so the server can
be started without changing into `backend/`.
"""

from backend.app.main import app  # noqa: F401
