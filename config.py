"""
Runtime configuration for the Trackademic backend.

Values come from the environment (a local .env file is honoured).
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "Trackademic")
# Tenant/application identifier, prefixes the submission collection
APP_ID = os.getenv("APP_ID", "trackademic-prod")

# memory|mongo
REPOSITORY_BACKEND = os.getenv("REPOSITORY_BACKEND", "memory").lower()
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Whether staff may re-review an already approved/rejected submission
ALLOW_REREVIEW = os.getenv("ALLOW_REREVIEW", "true").lower() == "true"

# Session tokens (JWT) and password hashing
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "trackademic-dev-secret")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))

SUBMISSION_COLLECTION = f"{APP_ID}.submission"


def configure_logging(level: str = None):
    """Attach a stream handler to the root logger once."""
    root = logging.getLogger()
    root.setLevel(level or LOG_LEVEL)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        root.addHandler(handler)


def validate_config():
    """Return a list of configuration problems, empty when usable."""
    issues = []
    if REPOSITORY_BACKEND not in ("memory", "mongo"):
        issues.append(f"Invalid REPOSITORY_BACKEND: {REPOSITORY_BACKEND}")
    if REPOSITORY_BACKEND == "mongo" and not (DATABASE_URL and DATABASE_NAME):
        issues.append("REPOSITORY_BACKEND=mongo requires DATABASE_URL and DATABASE_NAME")
    if JWT_SECRET_KEY == "trackademic-dev-secret":
        issues.append("JWT_SECRET_KEY is the development default")
    return issues
