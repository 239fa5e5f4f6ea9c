from pathlib import Path

import pytest

from telegram_reminder_bot.config import ConfigError, load_config

ENV_VARS = (
    "BOT_TOKEN",
    "BOT_BASE_DIR",
    "BOT_DATA_DIR",
    "BOT_LOG_DIR",
    "BOT_TIMEZONE",
    "BOT_LANGUAGE",
    "BOT_LOG_LEVEL",
    "BOT_STORAGE_BACKEND",
    "BOT_SQLITE_PATH",
    "REMINDER_POLL_SECONDS",
    "REMINDER_BATCH_SIZE",
    "REMINDER_LOCK_SECONDS",
    "REMINDER_LOCK_TTL_MS",
    "REMINDER_FAILURE_BACKOFF_MINUTES",
    "REMINDER_ACTION_NAMESPACE",
    "LEADER_LOCK_KEY",
    "LEADER_LEASE_SECONDS",
    "LEADER_RENEW_SECONDS",
    "LEADER_RETRY_SECONDS",
)


@pytest.fixture
def env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BOT_TOKEN", "123:abc")
    monkeypatch.setenv("BOT_BASE_DIR", str(tmp_path))
    return monkeypatch


def test_defaults(env, tmp_path):
    config = load_config()
    assert config.bot.token == "123:abc"
    assert config.bot.timezone == "America/Chicago"
    assert config.bot.storage_backend == "sqlite"
    assert config.bot.database_path == Path(tmp_path) / "data" / "reminders.db"
    assert config.bot.logs_dir == Path(tmp_path) / "logs"
    assert config.scheduler.poll_seconds == 10
    assert config.scheduler.batch_size == 25
    assert config.scheduler.lease_seconds == 60
    assert config.scheduler.failure_backoff_minutes == 5
    assert config.scheduler.action_namespace == "rem"
    assert config.leadership.lock_key == "telegram_polling_lock"
    assert config.leadership.lease_seconds == 60
    assert config.leadership.renew_seconds == 20
    assert config.leadership.retry_seconds == 2


def test_overrides(env, tmp_path):
    env.setenv("BOT_STORAGE_BACKEND", "MEMORY")
    env.setenv("BOT_LANGUAGE", "ru")
    env.setenv("BOT_TIMEZONE", "Europe/Moscow")
    env.setenv("REMINDER_LOCK_TTL_MS", "30000")
    env.setenv("REMINDER_BATCH_SIZE", "5")
    env.setenv("BOT_SQLITE_PATH", str(tmp_path / "custom.db"))
    config = load_config()
    assert config.bot.storage_backend == "memory"
    assert config.bot.language == "ru"
    assert config.bot.timezone == "Europe/Moscow"
    assert config.scheduler.lease_seconds == 30
    assert config.scheduler.batch_size == 5
    assert config.bot.database_path == tmp_path / "custom.db"


def test_explicit_lock_seconds_win_over_ttl(env):
    env.setenv("REMINDER_LOCK_SECONDS", "90")
    env.setenv("REMINDER_LOCK_TTL_MS", "30000")
    assert load_config().scheduler.lease_seconds == 90


def test_missing_token_is_fatal(env):
    env.delenv("BOT_TOKEN")
    with pytest.raises(ConfigError):
        load_config()


@pytest.mark.parametrize(
    "name, value",
    [
        ("REMINDER_POLL_SECONDS", "0"),
        ("REMINDER_BATCH_SIZE", "many"),
        ("BOT_STORAGE_BACKEND", "json"),
        ("BOT_LANGUAGE", "de"),
        ("BOT_TIMEZONE", "Mars/Olympus"),
        ("BOT_LOG_LEVEL", "LOUD"),
        ("REMINDER_ACTION_NAMESPACE", "a:b"),
        ("LEADER_RENEW_SECONDS", "60"),
        ("REMINDER_LOCK_TTL_MS", "-1"),
    ],
)
def test_invalid_values_raise(env, name, value):
    env.setenv(name, value)
    with pytest.raises(ConfigError):
        load_config()
