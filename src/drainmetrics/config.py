"""Process configuration read from the environment."""

import os
from collections.abc import Mapping
from dataclasses import dataclass


class ConfigError(ValueError):
    """The environment does not describe a usable configuration."""


# Levels understood by both logging and uvicorn.
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _number(environ: Mapping[str, str], name: str, default: float, kind: type) -> float:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = kind(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """Runtime settings of the drain receiver.

    Attributes:
        token: Shared secret path segment gating every endpoint.
        database_path: SQLite database file, or ":memory:".
        host: Interface to bind.
        port: Port to listen on.
        commit_interval: Seconds between batch commits.
        retention_seconds: Age after which records are deleted.
        sweep_interval: Seconds between retention sweeps.
        log_level: Logging level name.
    """

    token: str
    database_path: str = "metrics.db"
    host: str = "0.0.0.0"
    port: int = 3000
    commit_interval: float = 1.0
    retention_seconds: float = 3600
    sweep_interval: float = 1200
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Load settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Raises:
            ConfigError: TOKEN is missing, a numeric variable is malformed,
                or LOG_LEVEL names no known level.
        """
        env = os.environ if environ is None else environ
        token = env.get("TOKEN", "").strip()
        if not token:
            raise ConfigError("TOKEN must be set")
        log_level = env.get("LOG_LEVEL", "").strip().upper() or "INFO"
        if log_level not in LOG_LEVELS:
            raise ConfigError(
                f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
            )
        return cls(
            token=token,
            database_path=env.get("DATABASE_PATH", "metrics.db"),
            host=env.get("HOST", "0.0.0.0"),
            port=int(_number(env, "PORT", 3000, int)),
            commit_interval=_number(env, "COMMIT_INTERVAL_SECONDS", 1.0, float),
            retention_seconds=_number(env, "RETENTION_SECONDS", 3600, float),
            sweep_interval=_number(env, "SWEEP_INTERVAL_SECONDS", 1200, float),
            log_level=log_level,
        )
