"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., LIVENESS_WINDOW_SECONDS env var → Settings.LIVENESS_WINDOW_SECONDS)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Components take these values as constructor defaults, so tests can pass
their own numbers without touching the environment.

Time budget layout for one invocation (defaults):

    |<──────────── INVOCATION_BUDGET_SECONDS (10s) ────────────>|
    | claim | ── EXTRACTOR_TIMEOUT_SECONDS (6s) ── | write | slack |

The extractor deadline must stay strictly inside the invocation budget,
otherwise a slow upstream call would leave no time to persist the outcome.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── PostgreSQL ──────────────────────────────────────────────
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "extractq"
    POSTGRES_PASSWORD: str = "extractq"
    POSTGRES_DB: str = "extractq"

    # ── Redis ───────────────────────────────────────────────────
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # ── Worker (invocation host) ────────────────────────────────
    WORKER_POOL_SIZE: int = 4          # concurrent invocations per worker process
    WORKER_POLL_TIMEOUT: int = 1       # seconds BLPOP waits before re-checking shutdown
    SWEEP_INTERVAL_SECONDS: float = 30.0

    # ── Queue semantics ─────────────────────────────────────────
    MAX_ATTEMPTS: int = 3                  # failed claim cycles before a job is dead
    LIVENESS_WINDOW_SECONDS: float = 90.0  # a claim older than this is abandoned
    DISPATCH_CONCURRENCY: int = 3          # in-flight claims per owner
    INVOCATION_BUDGET_SECONDS: float = 10.0
    STORE_TIMEOUT_SECONDS: float = 1.5
    STORE_BATCH_LIMIT: int = 500           # max rows per atomic write group
    RETENTION_HOURS: float = 1.0
    CONTINUATION_DEDUPE_SECONDS: int = 30

    # ── Extractor ───────────────────────────────────────────────
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    EXTRACTOR_TIMEOUT_SECONDS: float = 6.0
    EXTRACTOR_MAX_TEXT_CHARS: int = 1800
    EXTRACTOR_FALLBACK_ENABLED: bool = True

    # ── App ─────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    CRON_SECRET: str | None = None

    @model_validator(mode="after")
    def _check_budget(self) -> "Settings":
        if self.EXTRACTOR_TIMEOUT_SECONDS >= self.INVOCATION_BUDGET_SECONDS:
            raise ValueError(
                "EXTRACTOR_TIMEOUT_SECONDS must be shorter than INVOCATION_BUDGET_SECONDS"
            )
        if not 1 <= self.DISPATCH_CONCURRENCY <= 10:
            raise ValueError("DISPATCH_CONCURRENCY must be between 1 and 10")
        if self.batch_estimate_seconds >= self.INVOCATION_BUDGET_SECONDS:
            raise ValueError(
                "One dispatch batch (EXTRACTOR_TIMEOUT_SECONDS + 2 * STORE_TIMEOUT_SECONDS) "
                "must fit inside INVOCATION_BUDGET_SECONDS"
            )
        if self.MAX_ATTEMPTS < 1:
            raise ValueError("MAX_ATTEMPTS must be at least 1")
        return self

    @property
    def batch_estimate_seconds(self) -> float:
        """Worst-case wall time of one dispatch batch (claim + extract + write)."""
        return self.EXTRACTOR_TIMEOUT_SECONDS + 2 * self.STORE_TIMEOUT_SECONDS

    @property
    def database_url(self) -> str:
        """Async connection string for FastAPI (uses asyncpg driver)."""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def sync_database_url(self) -> str:
        """Sync connection string for worker threads (uses psycopg2 driver)."""
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import this everywhere
settings = Settings()
