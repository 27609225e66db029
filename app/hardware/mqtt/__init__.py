"""MQTT transport to the field controllers."""

from app.hardware.mqtt.client_factory import create_mqtt_client
from app.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper

__all__ = ["MQTTClientWrapper", "create_mqtt_client"]
