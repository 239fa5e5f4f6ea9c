"""Environment-driven configuration for the reminder bot."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .utils.locks import resolve_lease_seconds

_logger = logging.getLogger("telegram_reminder_bot.config")

STORAGE_BACKENDS = ("sqlite", "memory")
LANGUAGES = ("en", "ru")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(RuntimeError):
    """Raised when application configuration is invalid."""


def _read_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _read_int(name: str, default: int, *, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer") from exc
    if min_value is not None and value < min_value:
        raise ConfigError(f"{name} must be >= {min_value}")
    return value


def _read_optional_float(name: str, *, min_value: float | None = None) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number") from exc
    if min_value is not None and value < min_value:
        raise ConfigError(f"{name} must be >= {min_value}")
    return value


@dataclass(slots=True)
class BotConfig:
    token: str
    data_dir: Path
    logs_dir: Path
    timezone: str = "America/Chicago"
    language: str = "en"
    log_level: str = "INFO"
    storage_backend: str = "sqlite"
    sqlite_path: Path | None = None

    @property
    def database_path(self) -> Path:
        return self.sqlite_path or self.data_dir / "reminders.db"


@dataclass(slots=True)
class SchedulerConfig:
    """Dispatch loop tuning."""

    poll_seconds: int = 10
    batch_size: int = 25
    lock_seconds: float | None = None
    lock_ttl_ms: float | None = None
    failure_backoff_minutes: int = 5
    action_namespace: str = "rem"

    @property
    def lease_seconds(self) -> int:
        return resolve_lease_seconds(self.lock_seconds, self.lock_ttl_ms)


@dataclass(slots=True)
class LeadershipConfig:
    lock_key: str = "telegram_polling_lock"
    lease_seconds: int = 60
    renew_seconds: int = 20
    retry_seconds: int = 2


@dataclass(slots=True)
class NetworkConfig:
    request_timeout: float = 10.0
    connect_timeout: float = 5.0
    ui_retries: int = 2
    ui_connect_timeout: float = 5.0
    ui_read_timeout: float = 5.0
    ui_jitter_min: float = 0.2
    ui_jitter_max: float = 0.6
    heavy_max_retries: int = 5
    heavy_backoff_start: float = 1.0
    heavy_backoff_cap: float = 15.0


@dataclass(slots=True)
class Config:
    bot: BotConfig
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    leadership: LeadershipConfig = field(default_factory=LeadershipConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)


def _validate_config(config: Config) -> None:
    if not config.bot.token:
        raise ConfigError("BOT_TOKEN must not be empty")
    if config.bot.storage_backend not in STORAGE_BACKENDS:
        raise ConfigError(f"BOT_STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}")
    if config.bot.language not in LANGUAGES:
        raise ConfigError(f"BOT_LANGUAGE must be one of {', '.join(LANGUAGES)}")
    if config.bot.log_level not in LOG_LEVELS:
        raise ConfigError(f"BOT_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
    try:
        ZoneInfo(config.bot.timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"BOT_TIMEZONE {config.bot.timezone!r} is not a known timezone") from exc
    if config.bot.storage_backend == "sqlite" and config.bot.database_path.is_dir():
        raise ConfigError("BOT_SQLITE_PATH must point to a file path")
    namespace = config.scheduler.action_namespace
    if not namespace or ":" in namespace:
        raise ConfigError("REMINDER_ACTION_NAMESPACE must be non-empty and must not contain ':'")
    if config.leadership.renew_seconds >= config.leadership.lease_seconds:
        raise ConfigError("LEADER_RENEW_SECONDS must be less than LEADER_LEASE_SECONDS")
    if not config.leadership.lock_key:
        raise ConfigError("LEADER_LOCK_KEY must not be empty")


def _log_summary(config: Config) -> None:
    _logger.info(
        "Configuration loaded: backend=%s, db=%s, timezone=%s, language=%s, poll=%ss, batch=%s, "
        "item lease=%ss, backoff=%sm, leader key=%s (lease=%ss, renew=%ss, retry=%ss)",
        config.bot.storage_backend,
        config.bot.database_path if config.bot.storage_backend == "sqlite" else "-",
        config.bot.timezone,
        config.bot.language,
        config.scheduler.poll_seconds,
        config.scheduler.batch_size,
        config.scheduler.lease_seconds,
        config.scheduler.failure_backoff_minutes,
        config.leadership.lock_key,
        config.leadership.lease_seconds,
        config.leadership.renew_seconds,
        config.leadership.retry_seconds,
    )


def load_config() -> Config:
    """Load configuration from environment variables."""

    token = (os.getenv("BOT_TOKEN") or "").strip()
    if not token:
        raise ConfigError("BOT_TOKEN environment variable must be set")

    base_dir = Path(_read_str("BOT_BASE_DIR", str(Path.cwd()))).expanduser()
    data_dir = Path(_read_str("BOT_DATA_DIR", str(base_dir / "data"))).expanduser()
    logs_dir = Path(_read_str("BOT_LOG_DIR", str(base_dir / "logs"))).expanduser()
    sqlite_raw = os.getenv("BOT_SQLITE_PATH")
    sqlite_path = Path(sqlite_raw).expanduser() if sqlite_raw and sqlite_raw.strip() else None

    bot = BotConfig(
        token=token,
        data_dir=data_dir,
        logs_dir=logs_dir,
        timezone=_read_str("BOT_TIMEZONE", "America/Chicago"),
        language=_read_str("BOT_LANGUAGE", "en").lower(),
        log_level=_read_str("BOT_LOG_LEVEL", "INFO").upper(),
        storage_backend=_read_str("BOT_STORAGE_BACKEND", "sqlite").lower(),
        sqlite_path=sqlite_path,
    )
    scheduler = SchedulerConfig(
        poll_seconds=_read_int("REMINDER_POLL_SECONDS", 10, min_value=1),
        batch_size=_read_int("REMINDER_BATCH_SIZE", 25, min_value=1),
        lock_seconds=_read_optional_float("REMINDER_LOCK_SECONDS", min_value=0),
        lock_ttl_ms=_read_optional_float("REMINDER_LOCK_TTL_MS", min_value=0),
        failure_backoff_minutes=_read_int("REMINDER_FAILURE_BACKOFF_MINUTES", 5, min_value=1),
        action_namespace=_read_str("REMINDER_ACTION_NAMESPACE", "rem"),
    )
    leadership = LeadershipConfig(
        lock_key=_read_str("LEADER_LOCK_KEY", "telegram_polling_lock"),
        lease_seconds=_read_int("LEADER_LEASE_SECONDS", 60, min_value=1),
        renew_seconds=_read_int("LEADER_RENEW_SECONDS", 20, min_value=1),
        retry_seconds=_read_int("LEADER_RETRY_SECONDS", 2, min_value=1),
    )

    config = Config(bot=bot, scheduler=scheduler, leadership=leadership, network=NetworkConfig())

    _validate_config(config)
    _log_summary(config)

    return config
