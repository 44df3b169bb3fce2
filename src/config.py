import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ologywood.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Access tokens
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# Keyed hash for signature certificates. Rotating it invalidates every issued certificate.
SIGNATURE_SECRET_KEY = os.getenv("SIGNATURE_SECRET_KEY")
if not SIGNATURE_SECRET_KEY:
    warnings.warn(
        "SIGNATURE_SECRET_KEY not set! Certificates will be signed with an insecure default",
        RuntimeWarning,
        stacklevel=2,
    )
    SIGNATURE_SECRET_KEY = "INSECURE-DEV-SIGNATURE-KEY"  # noqa: S105 - Dev fallback only
SIGNATURE_VALIDITY_DAYS = int(os.getenv("SIGNATURE_VALIDITY_DAYS", "365"))
CERTIFICATE_EXPIRY_WARNING_DAYS = int(os.getenv("CERTIFICATE_EXPIRY_WARNING_DAYS", "30"))

# Rendered contract documents
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024)))  # 10 MB

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

SEED_DEMO_DATA = _env_bool("SEED_DEMO_DATA", "false")
ENABLE_SCHEDULER = _env_bool("ENABLE_SCHEDULER", "true")
