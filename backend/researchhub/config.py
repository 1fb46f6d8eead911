"""Environment-driven settings shared across the Research Hub backend."""

import os
import secrets
from datetime import timedelta

# purpose: single place for deployment knobs read from the environment
# status: active

ENVIRONMENT = os.getenv("ENVIRONMENT", "production")
TESTING = os.getenv("TESTING") == "1"

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./test.db")

# A random key keeps local runs working; deployments must pin SECRET_KEY.
SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE = timedelta(days=7)
EMAIL_VERIFICATION_EXPIRE = timedelta(hours=24)
PASSWORD_RESET_EXPIRE = timedelta(hours=1)

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if ENVIRONMENT == "development" else "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")
SMTP_SERVER = os.getenv("SMTP_SERVER")
EMAIL_FROM = os.getenv("EMAIL_FROM", "noreply@researchhub.local")

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))


def _field_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(field.strip() for field in raw.split(",") if field.strip())


# Columns matched by the case-insensitive substring `search` filter.
PROJECT_SEARCH_FIELDS = _field_list("PROJECT_SEARCH_FIELDS", "title,description,tags")
DOCUMENT_SEARCH_FIELDS = _field_list("DOCUMENT_SEARCH_FIELDS", "title,description,tags")
DISCUSSION_SEARCH_FIELDS = _field_list("DISCUSSION_SEARCH_FIELDS", "title,content,tags")
USER_SEARCH_FIELDS = _field_list("USER_SEARCH_FIELDS", "username,email,affiliation")

SENTRY_DSN = os.getenv("SENTRY_DSN")


def is_development() -> bool:
    return ENVIRONMENT == "development"
