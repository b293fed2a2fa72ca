import os
import sys
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker


# Ensure `import backend.app...` works regardless of where pytest is run from.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite3"


@pytest.fixture()
def upload_policy(tmp_path: Path):
    """CV + temp directories private to one test."""
    from backend.app.services.cv_storage import UploadPolicy

    return UploadPolicy(
        allowed_mime_types=frozenset(
            {
                "application/pdf",
                "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            }
        ),
        allowed_extensions=frozenset({".pdf", ".docx"}),
        max_bytes=10 * 1024 * 1024,
        storage_root=tmp_path / "uploads" / "cvs",
        temp_root=tmp_path / "uploads" / "temp",
    )


@pytest.fixture()
def app(test_db_path: Path, upload_policy) -> FastAPI:
    """
    Create a FastAPI app wired to a temporary SQLite DB and temp upload dirs.

    We intentionally do NOT import `app.main` so startup hooks (orphan sweep,
    logging setup) stay out of the tests.
    """
    # Must be set before importing app.database so engine init doesn't choke on empty DATABASE_URL.
    os.environ["DISABLE_DOTENV"] = "1"
    os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{test_db_path}"
    os.environ["UPLOAD_DIR"] = str(test_db_path.parent / "uploads")

    from backend.app import database as db

    engine = create_engine(
        os.environ["DATABASE_URL"],
        connect_args={"check_same_thread": False},
    )
    # Same pragmas and unicode-aware lower() as the app engine.
    event.listen(engine, "connect", db.configure_sqlite_connection)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Patch the shared database module so router dependencies use the test DB.
    db.engine = engine
    db.SessionLocal = TestingSessionLocal

    # Import models so Base metadata is populated, then create tables.
    from backend.app.models import candidate, education, work_experience  # noqa: F401

    db.Base.metadata.drop_all(bind=engine)
    db.Base.metadata.create_all(bind=engine)

    from backend.app.api import candidates as candidates_api
    from backend.app.services.cv_storage import get_upload_policy
    from backend.app.utils.error_handlers import register_exception_handlers

    fastapi_app = FastAPI()
    fastapi_app.include_router(candidates_api.router)
    register_exception_handlers(fastapi_app)
    fastapi_app.dependency_overrides[get_upload_policy] = lambda: upload_policy

    return fastapi_app


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db_session(app: FastAPI):
    """
    Direct SQLAlchemy session bound to the same temporary SQLite DB used by the test app.
    """
    from backend.app.database import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def stored_files(upload_policy):
    """Callable returning (cv files, temp files) currently on disk."""

    def _list() -> tuple[list[Path], list[Path]]:
        def files_under(root: Path) -> list[Path]:
            if not root.exists():
                return []
            return sorted(p for p in root.iterdir() if p.is_file())

        return files_under(upload_policy.storage_root), files_under(upload_policy.temp_root)

    return _list
