"""Server configuration: reads settings from environment variables.

All settings have sensible defaults for local development.  In production
the values are typically overridden via env vars or a ``.env`` file.
"""

import os
from dataclasses import dataclass, field

from promptforge.constants import DEFAULT_MODEL, DEFAULT_STALLED_MINUTES

# --- Pagination defaults ---
# Module-level constants read at import time so FastAPI Query() defaults
# can reference them (Query defaults must be static at decoration time).
DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "20"))
MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", "100"))


@dataclass(frozen=True)
class ServerSettings:
    """Immutable server configuration read from environment at startup."""

    # Network
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS: comma-separated origins, or "*" for wide-open dev mode
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    # Admin API key: shared secret for admin endpoints (None = disabled)
    admin_api_key: str | None = None

    # Run a TaskRunner inside the server process.  Disable when a
    # separate ``promptforge-worker`` process drains the outbox.
    worker_in_process: bool = True

    # Default age threshold (minutes) for stalled-session recovery
    stalled_minutes: int = DEFAULT_STALLED_MINUTES


@dataclass(frozen=True)
class ProviderSettings:
    """Generation-provider configuration."""

    api_key: str | None = None
    base_url: str | None = None
    model: str = DEFAULT_MODEL
    timeout_seconds: float = 60.0


@dataclass(frozen=True)
class RunnerSettings:
    """Outbox polling configuration shared by the server and worker CLI."""

    poll_interval: float = 1.0
    max_concurrent: int = 4
    lease_seconds: int = 300
    max_attempts: int = 5


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> ServerSettings:
    """Build settings from ``SERVER_*`` environment variables."""
    raw_origins = os.getenv("SERVER_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=origins,
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        admin_api_key=os.getenv("ADMIN_API_KEY") or None,
        worker_in_process=_env_flag("WORKER_IN_PROCESS", "true"),
        stalled_minutes=DEFAULT_STALLED_MINUTES,
    )


def load_provider_settings() -> ProviderSettings:
    """Build provider settings from ``OPENAI_*`` / ``PROMPTFORGE_*`` variables."""
    return ProviderSettings(
        api_key=os.getenv("OPENAI_API_KEY") or None,
        base_url=os.getenv("OPENAI_BASE_URL") or None,
        model=DEFAULT_MODEL,
        timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "60")),
    )


def load_runner_settings() -> RunnerSettings:
    """Build runner settings from ``WORKER_*`` variables."""
    return RunnerSettings(
        poll_interval=float(os.getenv("WORKER_POLL_INTERVAL", "1.0")),
        max_concurrent=int(os.getenv("WORKER_MAX_CONCURRENT", "4")),
        lease_seconds=int(os.getenv("WORKER_LEASE_SECONDS", "300")),
        max_attempts=int(os.getenv("WORKER_MAX_ATTEMPTS", "5")),
    )
