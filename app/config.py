import sys
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment: "dev" (default) or "prod"
    env: str = "dev"
    # Storage backend: "memory" (process lifetime) or "sqlite"
    storage_backend: str = "memory"
    # SQLite file, only used when storage_backend=sqlite
    database_path: str = "toefl_prep.db"
    # CORS origins (comma-separated); empty = allow all
    cors_origins: str = ""
    # When set, user-scoped endpoints require "Authorization: Bearer <user id>"
    auth_required: bool = False
    # Reject answers submitted to a session that is no longer in progress
    strict_session_answers: bool = False
    # Session routes append session_started/question_answered/session_completed events
    emit_session_events: bool = True
    # Seed for the grader's random source (unset = nondeterministic)
    grading_seed: int | None = None
    # PayPal REST API base, e.g. https://api-m.sandbox.paypal.com
    # Empty = mock mode, every payment verifies.
    paypal_api_base: str = ""
    paypal_client_id: str = ""
    paypal_client_secret: str = ""
    paypal_timeout_seconds: float = 10.0
    # Questions per month reported by the usage endpoint
    usage_monthly_limit: int = 1000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


def _load_settings() -> Settings:
    """Load settings and reject values the app cannot start with."""
    s = Settings()

    if s.env not in ("dev", "prod"):
        print(f"ERROR: ENV must be 'dev' or 'prod', got {s.env!r}.", file=sys.stderr)
        sys.exit(1)

    if s.storage_backend not in ("memory", "sqlite"):
        print(
            f"ERROR: STORAGE_BACKEND must be 'memory' or 'sqlite', got {s.storage_backend!r}.",
            file=sys.stderr,
        )
        sys.exit(1)

    if s.paypal_api_base and not (s.paypal_client_id and s.paypal_client_secret):
        print("ERROR: PAYPAL_API_BASE is set but PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET are missing.", file=sys.stderr)
        sys.exit(1)

    return s


settings = _load_settings()
