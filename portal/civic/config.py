# Shared configuration for the complaint tracker, read once from the environment

import os
from pathlib import Path

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------
# Try multiple .env locations: portal/, repo root, then cwd
_portal_dir = Path(__file__).resolve().parent.parent
for _env_path in [_portal_dir / ".env", _portal_dir.parent / ".env", Path.cwd() / ".env"]:
    if _env_path.is_file():
        load_dotenv(_env_path, override=False)
        break
else:
    load_dotenv(override=False)


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


APP_ENV = os.getenv("APP_ENV", "development")

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
MONGODB_DB = os.getenv("MONGODB_DB", "civic_tracker")
SEED_ON_STARTUP = _flag("SEED_ON_STARTUP", True)

# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
JWT_SECRET = os.getenv("JWT_SECRET", "")
if not JWT_SECRET:
    if APP_ENV != "development":
        raise RuntimeError(
            "FATAL: JWT_SECRET must be set outside development. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
        )
    JWT_SECRET = "development-only-secret-change-me-before-deploying"
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "12"))

OTP_DEMO_MODE = _flag("OTP_DEMO_MODE", True)
OTP_DEMO_CODE = "123456"
OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", "5"))

# ---------------------------------------------------------------------------
# Lifecycle & analytics
# ---------------------------------------------------------------------------
INITIAL_STATUS = os.getenv("INITIAL_STATUS", "pending")
STATUS_TRANSITIONS = os.getenv("STATUS_TRANSITIONS", "permissive")
TREND_MODE = os.getenv("TREND_MODE", "computed")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
