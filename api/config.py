"""
Configuration for the Voice Evals API.

Server, storage and sync settings.
Loads from .env file if present (via python-dotenv).
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


# --- API Configuration ---
API_HOST = os.environ.get("VOICE_EVALS_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("VOICE_EVALS_API_PORT", "8000"))

# CORS origins (console dev server)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
]

# --- Storage ---
# The database path itself is read by voice_evals.storage.get_db_path (VOICE_EVALS_DB_PATH)
MAX_SESSIONS = int(os.environ.get("VOICE_EVALS_MAX_SESSIONS", "50"))
MAX_GOLDEN_SAMPLES = int(os.environ.get("VOICE_EVALS_MAX_GOLDEN_SAMPLES", "200"))

# --- Evaluation ---
DEFAULT_VERSION = os.environ.get("VOICE_EVALS_DEFAULT_VERSION", "v1.1")

# --- Correction sync (console backend) ---
SYNC_ENABLED = _env_bool("VOICE_EVALS_SYNC_ENABLED")
SYNC_BASE_URL = os.environ.get("VOICE_EVALS_SYNC_BASE_URL", "http://localhost:3001")
SYNC_TIMEOUT = float(os.environ.get("VOICE_EVALS_SYNC_TIMEOUT", "10"))
