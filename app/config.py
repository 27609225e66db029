"""
Configuration for WaterKontrol Core
===================================
Runtime settings for the telemetry ingestor, the schedule actuation engine
and the liveness sweep. Values come from ``WATERKONTROL_*`` environment
variables. Also sets up the logging configuration.
"""

import logging
import os
import sys
from contextlib import suppress
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler

from app.domain.exceptions import ConfigurationError


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("WATERKONTROL_ENV", "development"))
    database_path: str = field(
        default_factory=lambda: os.getenv("WATERKONTROL_DATABASE_PATH", "database/waterkontrol.db")
    )
    # Upper bound on how long a store operation waits for a lock
    store_timeout_seconds: float = field(
        default_factory=lambda: _env_float("WATERKONTROL_STORE_TIMEOUT_SECONDS", 5.0)
    )

    enable_mqtt: bool = field(default_factory=lambda: _env_bool("WATERKONTROL_ENABLE_MQTT", True))
    mqtt_broker_host: str = field(default_factory=lambda: os.getenv("WATERKONTROL_MQTT_HOST", "localhost"))
    mqtt_broker_port: int = field(default_factory=lambda: _env_int("WATERKONTROL_MQTT_PORT", 1883))
    mqtt_client_id: str = field(default_factory=lambda: os.getenv("WATERKONTROL_MQTT_CLIENT_ID", ""))
    mqtt_username: str = field(default_factory=lambda: os.getenv("WATERKONTROL_MQTT_USERNAME", ""))
    mqtt_password: str = field(default_factory=lambda: os.getenv("WATERKONTROL_MQTT_PASSWORD", ""))
    mqtt_keepalive: int = field(default_factory=lambda: _env_int("WATERKONTROL_MQTT_KEEPALIVE", 60))

    # <template>/<abbrev>/<serial>
    telemetry_topic: str = field(default_factory=lambda: os.getenv("WATERKONTROL_TELEMETRY_TOPIC", "+/+/+"))
    command_topic_suffix: str = field(default_factory=lambda: os.getenv("WATERKONTROL_COMMAND_SUFFIX", "/in"))

    schedule_poll_seconds: int = field(default_factory=lambda: _env_int("WATERKONTROL_SCHEDULE_POLL_SECONDS", 60))
    liveness_sweep_seconds: int = field(
        default_factory=lambda: _env_int("WATERKONTROL_LIVENESS_SWEEP_SECONDS", 60)
    )
    offline_threshold_minutes: int = field(
        default_factory=lambda: _env_int("WATERKONTROL_OFFLINE_THRESHOLD_MINUTES", 5)
    )
    scheduler_max_workers: int = field(default_factory=lambda: _env_int("WATERKONTROL_SCHEDULER_WORKERS", 2))

    eventbus_queue_size: int = field(default_factory=lambda: _env_int("WATERKONTROL_EVENTBUS_QUEUE_SIZE", 1024))
    eventbus_worker_count: int = field(default_factory=lambda: _env_int("WATERKONTROL_EVENTBUS_WORKER_COUNT", 2))

    # Push notifications (FCM legacy HTTP API)
    notifications_enabled: bool = field(
        default_factory=lambda: _env_bool("WATERKONTROL_NOTIFICATIONS_ENABLED", False)
    )
    fcm_server_key: str = field(default_factory=lambda: os.getenv("WATERKONTROL_FCM_SERVER_KEY", ""))
    fcm_url: str = field(
        default_factory=lambda: os.getenv("WATERKONTROL_FCM_URL", "https://fcm.googleapis.com/fcm/send")
    )
    notification_timeout_seconds: float = field(
        default_factory=lambda: _env_float("WATERKONTROL_NOTIFICATION_TIMEOUT_SECONDS", 5.0)
    )

    DEBUG: bool = field(default_factory=lambda: _env_bool("WATERKONTROL_DEBUG", False))
    audit_log_path: str = field(default_factory=lambda: os.getenv("WATERKONTROL_AUDIT_LOG_PATH", "logs/audit.log"))
    log_level: str = field(default_factory=lambda: os.getenv("WATERKONTROL_LOG_LEVEL", "INFO"))

    def __post_init__(self) -> None:
        if self.environment == "production" and self.notifications_enabled and not self.fcm_server_key:
            raise ConfigurationError(
                "Notifications are enabled but WATERKONTROL_FCM_SERVER_KEY is not set.\n"
                "Set the key or disable notifications with WATERKONTROL_NOTIFICATIONS_ENABLED=false."
            )


def validate_config(config: AppConfig) -> list[str]:
    """
    Validate configuration and return list of warnings.

    Args:
        config: AppConfig instance

    Returns:
        List of warning messages (empty if all valid)
    """
    warnings = []

    if config.schedule_poll_seconds != 60:
        warnings.append(
            f"Schedule poll interval ({config.schedule_poll_seconds}s) is not one minute. "
            "Schedule boundaries are matched at minute granularity and may be missed or repeated."
        )

    if config.offline_threshold_minutes < 1:
        warnings.append(
            f"Offline threshold ({config.offline_threshold_minutes} min) is below one minute. "
            "Every device will flap between online and offline."
        )

    if config.store_timeout_seconds <= 0:
        warnings.append("Store timeout must be positive; SQLite will fail immediately on a locked database.")

    if config.notifications_enabled and not config.fcm_server_key:
        warnings.append("Notifications are enabled but no FCM server key is configured.")

    if not config.command_topic_suffix.startswith("/"):
        warnings.append(f"Command topic suffix {config.command_topic_suffix!r} does not start with '/'.")

    return warnings


def setup_logging(debug: bool = False, log_level: str | None = None) -> None:
    """Setup logging configuration."""
    if debug:
        level = logging.DEBUG
    else:
        level = logging.getLevelName((log_level or "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    # Avoid adding duplicate handlers when called more than once
    has_console = any(getattr(h, "name", "") == "waterkontrol_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "waterkontrol_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "waterkontrol_console"
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file:
        os.makedirs("logs", exist_ok=True)
        file_handler = RotatingFileHandler(
            "logs/waterkontrol.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "waterkontrol_file"
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"waterkontrol_console", "waterkontrol_file"}:
            handler.setLevel(level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(level))

    # paho logs every keepalive at DEBUG
    if _env_bool("WATERKONTROL_SILENCE_PAHO", True):
        logging.getLogger("paho").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    config = AppConfig()
    logger = logging.getLogger("config_loader")
    for warning in validate_config(config):
        logger.warning(warning)
    return config
