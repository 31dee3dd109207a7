"""
Centralized configuration for the ClaimDesk engine.

Environment-aware accessors plus the ClaimDeskConfig struct that is handed
to every component constructor.
"""

import os
from dataclasses import dataclass


def is_dev_mode() -> bool:
    """Check if running in development mode (--dev flag or DEV_MODE env)."""
    return os.getenv("DEV_MODE", "").lower() in ("true", "1", "yes")


def is_production() -> bool:
    """Check if running on Railway (production environment)."""
    return bool(os.environ.get("RAILWAY_ENVIRONMENT"))


def get_api_port() -> int:
    """Get API server port from env or default."""
    return int(os.getenv("API_PORT", "8000"))


def get_frontend_url() -> str:
    """Get the client app URL used for CORS."""
    return os.environ.get("FRONTEND_URL", "http://localhost:5173").rstrip("/")


def get_allowed_origins() -> list[str]:
    """
    Get list of allowed CORS origins.

    Includes localhost variants for dev and the configured frontend URL.
    """
    hosts = ["localhost", "127.0.0.1"]
    ports = [3000, 5173, get_api_port()]
    origins = [f"http://{host}:{port}" for host in hosts for port in ports]

    frontend_url = get_frontend_url()
    if frontend_url not in origins:
        origins.append(frontend_url)

    return origins


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        print(f"Warning: {name}={value!r} is not an integer, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        print(f"Warning: {name}={value!r} is not a number, using {default}")
        return default


@dataclass(frozen=True)
class ClaimDeskConfig:
    """
    Runtime settings for the engine components.

    Built once at startup (see from_env) and passed to constructors, so tests
    can build their own instance without touching the environment.
    """

    timezone: str = "Asia/Taipei"
    lock_timeout_seconds: float = 30.0
    dedup_ttl_hours: int = 168
    tick_interval_minutes: int = 5
    weekly_digest_day: str = "mon"
    weekly_digest_hour: int = 9
    inbox_limit: int = 50
    escalation_days: int = 30
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None
    telegram_webhook_secret: str | None = None
    telegram_timeout_seconds: float = 10.0
    telegram_api_base: str = "https://api.telegram.org"
    public_webhook_url: str | None = None
    drive_folder_name: str = "TrafficCaseFiles"
    sync_merge: str = "replace"

    @classmethod
    def from_env(cls) -> "ClaimDeskConfig":
        """Build config from environment variables, falling back to defaults."""
        return cls(
            timezone=os.environ.get("CLAIMDESK_TIMEZONE", "Asia/Taipei"),
            lock_timeout_seconds=_env_float("LOCK_TIMEOUT_SECONDS", 30.0),
            dedup_ttl_hours=_env_int("DEDUP_TTL_HOURS", 168),
            tick_interval_minutes=_env_int("TICK_INTERVAL_MINUTES", 5),
            weekly_digest_day=os.environ.get("WEEKLY_DIGEST_DAY", "mon").lower(),
            weekly_digest_hour=_env_int("WEEKLY_DIGEST_HOUR", 9),
            telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN") or None,
            telegram_chat_id=os.environ.get("TELEGRAM_CHAT_ID") or None,
            telegram_webhook_secret=os.environ.get("TELEGRAM_WEBHOOK_SECRET") or None,
            telegram_timeout_seconds=_env_float("TELEGRAM_TIMEOUT", 10.0),
            public_webhook_url=os.environ.get("PUBLIC_WEBHOOK_URL") or None,
            drive_folder_name=os.environ.get("DRIVE_FOLDER_NAME", "TrafficCaseFiles"),
            sync_merge=os.environ.get("CLAIMDESK_SYNC_MERGE", "replace").lower(),
        )


# Required environment variables for production
# Format: (name, description, required_in_dev)
REQUIRED_ENV_VARS = [
    ("DATABASE_URL", "PostgreSQL connection string", True),
    ("TELEGRAM_BOT_TOKEN", "Fallback Telegram bot token", False),
    ("PUBLIC_WEBHOOK_URL", "Public URL Telegram posts updates to", False),
    ("GOOGLE_DRIVE_CREDENTIALS_JSON", "Service account for attachment uploads", False),
]


def check_required_env_vars() -> tuple[bool, list[str]]:
    """
    Check that required environment variables are set.

    Returns:
        (all_ok, warnings): Tuple of success flag and list of warning messages
    """
    warnings = []
    errors = []
    in_dev = is_dev_mode()

    for name, description, required_in_dev in REQUIRED_ENV_VARS:
        value = os.environ.get(name)

        if not value:
            if is_production() and required_in_dev:
                errors.append(f"  ✗ {name}: Not set ({description})")
            elif required_in_dev or not in_dev:
                warnings.append(f"  ⚠ {name}: Not set ({description})")

    if errors:
        for error in errors:
            print(error)
        return False, warnings

    return True, warnings
