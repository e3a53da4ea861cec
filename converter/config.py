"""Application configuration. Loads from environment and .env file."""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
# Load .env from cwd, then project root .env
load_dotenv()
load_dotenv(BASE_DIR.parent / ".env")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Output negotiation
DEFAULT_OUTPUT_FORMAT = os.getenv("DEFAULT_OUTPUT_FORMAT", "webp").strip().lower()
DEFAULT_QUALITY = int(os.getenv("DEFAULT_QUALITY", "80"))

# Accepted upload: one file, capped in MB (0 disables the cap)
MAX_FILES_PER_REQUEST = 1
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "50"))
MAX_UPLOAD_SIZE_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024

# Streaming: chunk size written by the encoder and queue depth between stages
STREAM_CHUNK_SIZE = int(os.getenv("STREAM_CHUNK_SIZE_KB", "64")) * 1024
STREAM_BUFFER_CHUNKS = max(1, int(os.getenv("STREAM_BUFFER_CHUNKS", "8")))

# Per-request deadline in seconds (0 disables)
CONVERSION_TIMEOUT_SECONDS = float(os.getenv("CONVERSION_TIMEOUT_SECONDS", "0"))
# Hold response headers until the encoder produced its first chunk
COMMIT_ON_FIRST_CHUNK = _env_bool("COMMIT_ON_FIRST_CHUNK", False)
# Decode truncated or slightly broken input instead of failing
TOLERANT_DECODE = _env_bool("TOLERANT_DECODE", True)

# Server (for uvicorn)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
# CORS: comma-separated origins, e.g. "http://localhost:5173,http://127.0.0.1:5173"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("converter")
