import os
from pathlib import Path
from dotenv import load_dotenv

# Override=True so changes in backend/.env take effect on process reload (and not get
# stuck on old environment variables).
#
# For automated tests (SQLite), we need to prevent backend/.env from overriding the
# test DATABASE_URL. Set DISABLE_DOTENV=1 to skip loading .env.
if os.getenv("DISABLE_DOTENV") != "1":
    load_dotenv(override=True)

_BACKEND_DIR = Path(__file__).resolve().parent.parent

_raw_database_url = (os.getenv("DATABASE_URL") or "").strip()
# Default to a local SQLite DB for dev so the backend can start out-of-the-box.
# Use an absolute path so it works regardless of current working directory.
_default_sqlite_path = (_BACKEND_DIR / "dev.db").as_posix()
DATABASE_URL = _raw_database_url or f"sqlite:///{_default_sqlite_path}"

# development | production. Outside development, 500 responses hide exception text.
APP_ENV = (os.getenv("APP_ENV", "development") or "development").strip().lower()
LOG_LEVEL = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()

# -------------------- File uploads --------------------
# Absolute paths; override in env (useful for tests).
UPLOAD_DIR = os.getenv("UPLOAD_DIR") or (_BACKEND_DIR / "uploads").as_posix()
CV_STORAGE_DIR = os.getenv("CV_STORAGE_DIR") or (Path(UPLOAD_DIR) / "cvs").as_posix()
TEMP_UPLOAD_DIR = os.getenv("TEMP_UPLOAD_DIR") or (Path(UPLOAD_DIR) / "temp").as_posix()
MAX_CV_BYTES = int(os.getenv("MAX_CV_BYTES", str(10 * 1024 * 1024)) or 10 * 1024 * 1024)

ALLOWED_CV_CONTENT_TYPES = {
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
ALLOWED_CV_EXTENSIONS = {".pdf", ".docx"}

# Unreferenced CVs and temp files older than this are removed by the orphan sweep.
ORPHAN_MAX_AGE_S = int(os.getenv("ORPHAN_MAX_AGE_S", "3600") or "3600")
SWEEP_ON_STARTUP = (os.getenv("SWEEP_ON_STARTUP", "1") or "1").strip() in {"1", "true", "True", "yes", "YES"}

# -------------------- Listing --------------------
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10") or "10")
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100") or "100")

# -------------------- API client --------------------
ATS_API_URL = os.getenv("ATS_API_URL", "http://localhost:8000")
ATS_API_TIMEOUT_S = float(os.getenv("ATS_API_TIMEOUT_S", "10") or "10")
ATS_API_MAX_RETRIES = int(os.getenv("ATS_API_MAX_RETRIES", "3") or "3")
