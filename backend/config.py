from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Get the directory where this config file is located.
_BACKEND_DIR = Path(__file__).parent.resolve()


def _detect_project_root(backend_dir: Path) -> Path:
    """Resolve project root from the backend directory in the repo layout."""
    return backend_dir.parent.resolve()


_PROJECT_ROOT = _detect_project_root(_BACKEND_DIR)
_DEFAULT_DB_PATH = (_PROJECT_ROOT / "data" / "portfolio.db").resolve()
_SQLITE_ASYNC_PREFIX = "sqlite+aiosqlite:///"
_SQLITE_SYNC_PREFIX = "sqlite:///"


class Settings(BaseSettings):
    # Qubic RPC
    QUBIC_RPC_URL: str = "https://rpc.qubic.org"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Request / snapshot caching
    REQUEST_CACHE_TTL_SECONDS: float = 30.0  # Per-request response cache
    SNAPSHOT_CACHE_TTL_SECONDS: float = 300.0  # Assembled portfolio snapshots

    # Retry behaviour (linear backoff: base * (attempt - 1))
    FETCH_MAX_ATTEMPTS: int = 3
    FETCH_BASE_DELAY_SECONDS: float = 1.0

    # Reads
    TRANSACTION_LIMIT: int = 100

    # Auto refresh of the tracked identity
    AUTO_REFRESH_ENABLED: bool = True
    AUTO_REFRESH_INTERVAL_SECONDS: float = 30.0

    # Snapshot persistence (best effort, survives restarts)
    SNAPSHOT_PERSISTENCE_ENABLED: bool = True
    DATABASE_URL: str = f"sqlite+aiosqlite:///{_DEFAULT_DB_PATH}"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    @field_validator("QUBIC_RPC_URL", mode="before")
    @classmethod
    def _normalize_rpc_url(cls, value: object) -> object:
        if value is None:
            return value
        text = str(value).strip()
        if not text:
            return text
        # Paths are appended as "/v1/...", so drop any trailing slash.
        return text.rstrip("/")

    @field_validator(
        "REQUEST_CACHE_TTL_SECONDS",
        "SNAPSHOT_CACHE_TTL_SECONDS",
        "AUTO_REFRESH_INTERVAL_SECONDS",
        "HTTP_TIMEOUT_SECONDS",
    )
    @classmethod
    def _positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("duration must be positive")
        return value

    @field_validator("FETCH_MAX_ATTEMPTS", "TRANSACTION_LIMIT")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(1, int(value))

    @field_validator("FETCH_BASE_DELAY_SECONDS")
    @classmethod
    def _non_negative_delay(cls, value: float) -> float:
        return max(0.0, float(value))

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def _normalize_database_url(cls, value: object) -> object:
        """Normalize DB URL so a changed cwd never splits the snapshot store."""
        if value is None:
            return value

        text = str(value).strip().strip('"').strip("'")
        if not text:
            return text

        # Convert relative SQLite paths to absolute project-root paths.
        for prefix in (_SQLITE_ASYNC_PREFIX, _SQLITE_SYNC_PREFIX):
            if not text.startswith(prefix):
                continue
            path_part = text[len(prefix) :]
            if not path_part:
                return text
            if path_part in {":memory:", "/:memory:"}:
                return f"{prefix}:memory:"
            absolute = Path(path_part).resolve() if path_part.startswith("/") else (_PROJECT_ROOT / path_part).resolve()
            return f"{prefix}{absolute}"

        return text

    class Config:
        # Load project-root .env first (common workflow), then backend/.env
        # as an override if present.
        env_file = (
            str(_PROJECT_ROOT / ".env"),
            str(_BACKEND_DIR / ".env"),
        )
        env_file_encoding = "utf-8"


settings = Settings()
