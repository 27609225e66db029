import pytest

from app.config import AppConfig, validate_config
from app.domain.exceptions import ConfigurationError


def test_defaults(monkeypatch):
    for name in ("WATERKONTROL_MQTT_PORT", "WATERKONTROL_OFFLINE_THRESHOLD_MINUTES", "WATERKONTROL_COMMAND_SUFFIX"):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig()

    assert config.mqtt_broker_port == 1883
    assert config.offline_threshold_minutes == 5
    assert config.command_topic_suffix == "/in"
    assert config.telemetry_topic == "+/+/+"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("WATERKONTROL_MQTT_PORT", "8883")
    monkeypatch.setenv("WATERKONTROL_ENABLE_MQTT", "no")
    monkeypatch.setenv("WATERKONTROL_STORE_TIMEOUT_SECONDS", "2.5")

    config = AppConfig()

    assert config.mqtt_broker_port == 8883
    assert config.enable_mqtt is False
    assert config.store_timeout_seconds == 2.5


def test_invalid_integer_names_the_variable(monkeypatch):
    monkeypatch.setenv("WATERKONTROL_MQTT_PORT", "eighteen")

    with pytest.raises(ValueError, match="WATERKONTROL_MQTT_PORT"):
        AppConfig()


def test_production_requires_fcm_key_when_notifications_enabled():
    with pytest.raises(ConfigurationError):
        AppConfig(environment="production", notifications_enabled=True, fcm_server_key="")


def test_validate_config_warnings():
    config = AppConfig(
        schedule_poll_seconds=30,
        offline_threshold_minutes=0,
        notifications_enabled=True,
        fcm_server_key="",
        command_topic_suffix="in",
    )

    warnings = validate_config(config)

    assert len(warnings) == 4


def test_validate_config_clean():
    config = AppConfig(
        schedule_poll_seconds=60,
        offline_threshold_minutes=5,
        store_timeout_seconds=5.0,
        notifications_enabled=False,
        command_topic_suffix="/in",
    )

    assert validate_config(config) == []
