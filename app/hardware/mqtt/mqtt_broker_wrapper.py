"""
    Message bus adapter over paho-mqtt.

    Connects to the broker, keeps topic subscriptions across reconnects, fans
    incoming messages out to every matching callback and publishes outbound
    commands, tracking publish health along the way.
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Callable

import paho.mqtt.client as mqtt

from app.enums.events import DeviceEvent
from app.hardware.mqtt.client_factory import create_mqtt_client
from app.schemas.events import ConnectivityStatePayload
from app.utils.time import iso_now, utc_now

# Device traffic gets its own rotating file and stays out of the root log
_mqtt_logger = logging.getLogger("waterkontrol.mqtt")
if not _mqtt_logger.handlers:
    os.makedirs("logs", exist_ok=True)
    _mqtt_handler = RotatingFileHandler(
        "logs/devices_mqtt.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
        delay=True,
    )
    _mqtt_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    _mqtt_logger.addHandler(_mqtt_handler)
    _mqtt_logger.setLevel(logging.INFO)
    _mqtt_logger.propagate = False

_LOG_MQTT_DISPATCH = os.getenv("WATERKONTROL_LOG_MQTT_DISPATCH", "").lower() in {"1", "true", "t", "yes", "on"}

MessageCallback = Callable[[Any, Any, Any], None]


@dataclass
class HealthStatus:
    """
    Tracks the health status of the MQTT client connection.
    """

    is_connected: bool = False
    last_error: str | None = None
    last_error_time: datetime | None = None
    connection_attempts: int = 0
    successful_publishes: int = 0
    failed_publishes: int = 0
    active_subscriptions: int = 0

    @property
    def success_rate(self) -> float:
        """Publish success rate percentage"""
        total_publishes = self.successful_publishes + self.failed_publishes
        if total_publishes == 0:
            return 0.0
        return (self.successful_publishes / total_publishes) * 100

    def mark_connected(self):
        self.is_connected = True
        self.last_error = None
        self.last_error_time = None

    def mark_disconnected(self):
        self.is_connected = False

    def record_error(self, error: Exception | str):
        self.last_error = str(error)
        self.last_error_time = utc_now()

    def to_dict(self):
        return {
            "is_connected": self.is_connected,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "connection_attempts": self.connection_attempts,
            "successful_publishes": self.successful_publishes,
            "failed_publishes": self.failed_publishes,
            "active_subscriptions": self.active_subscriptions,
            "publish_success_rate": round(self.success_rate, 2),
        }


class MQTTClientWrapper:
    """
    Message bus adapter: ``subscribe(topic_pattern, callback)`` and
    ``publish(topic, payload) -> bool``.
    """

    def __init__(
        self,
        broker: str,
        port: int,
        client_id: str = "",
        *,
        event_bus=None,
        username: str | None = None,
        password: str | None = None,
        keepalive: int = 60,
        connect: bool = True,
    ):
        """
        Args:
            broker: The MQTT broker address.
            port: The MQTT broker port.
            client_id: The MQTT client ID. Defaults to "" (broker assigned).
            event_bus: Receives CONNECTIVITY_CHANGED events when given.
            username: Optional broker credentials.
            password: Optional broker credentials.
            keepalive: Keepalive interval in seconds.
            connect: Connect immediately.
        """
        self.broker = broker
        self.port = port
        self.client_id = client_id
        self.keepalive = keepalive
        self.client = create_mqtt_client(client_id=client_id, username=username, password=password)
        self.connected = False
        self._callback_lock = threading.Lock()
        self._callbacks: list[tuple[str, MessageCallback]] = []
        self._topics: list[str] = []
        # Always dispatch through the fan-out handler so several subscribers can coexist
        self.client.on_message = self._dispatch_message
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.event_bus = event_bus
        self.health_status = HealthStatus()
        if connect:
            self._connect()

    def _connect(self):
        self.health_status.connection_attempts += 1
        try:
            self.client.reconnect_delay_set(min_delay=1, max_delay=60)
            # The network loop retries until the broker answers; _on_connect marks us connected
            self.client.connect_async(self.broker, self.port, self.keepalive)
            self.client.loop_start()
            _mqtt_logger.info("Connecting to MQTT broker %s:%s", self.broker, self.port)
        except Exception as e:
            _mqtt_logger.error("Error connecting to MQTT broker %s:%s: %s", self.broker, self.port, e)
            self.connected = False
            self.health_status.record_error(e)

    def _on_connect(self, client, userdata, flags, rc, properties=None):
        if rc != 0:
            _mqtt_logger.error("MQTT broker refused connection: rc=%s", rc)
            self.health_status.record_error(f"connect rc={rc}")
            return
        was_connected = self.health_status.is_connected
        self.connected = True
        self.health_status.mark_connected()
        with self._callback_lock:
            topics = list(self._topics)
        for topic in topics:
            client.subscribe(topic)
        if topics:
            _mqtt_logger.info("Re-subscribed to %d topic(s) after connect", len(topics))
        if not was_connected:
            self._publish_connectivity("connected")

    def _on_disconnect(self, client, userdata, rc, *args):
        self.connected = False
        self.health_status.mark_disconnected()
        if rc != 0:
            _mqtt_logger.warning("Unexpected MQTT disconnect (rc=%s); paho will reconnect", rc)
            self.health_status.record_error(f"disconnect rc={rc}")
        self._publish_connectivity("disconnected")

    def _publish_connectivity(self, status: str) -> None:
        if self.event_bus is None:
            return
        try:
            payload = ConnectivityStatePayload(
                connection_type="mqtt",
                status=status,
                endpoint=self.broker,
                port=self.port,
                timestamp=iso_now(),
            )
            self.event_bus.publish(DeviceEvent.CONNECTIVITY_CHANGED, payload)
        except Exception as e:
            _mqtt_logger.error("Failed to publish connectivity event: %s", e)

    def disconnect(self):
        try:
            if self.connected:
                self.client.disconnect()
            # The loop may still be retrying after a drop or a failed first connect
            self.client.loop_stop()
            self.connected = False
            self.health_status.mark_disconnected()
            with self._callback_lock:
                self._callbacks.clear()
                self._topics.clear()
            self.health_status.active_subscriptions = 0
            _mqtt_logger.info("Disconnected from MQTT broker.")
        except Exception as e:
            _mqtt_logger.error("Error disconnecting from MQTT broker: %s", e)
            self.health_status.record_error(e)

    def publish(self, topic: str, payload: Any, qos: int = 0) -> bool:
        """
        Hand a message to the broker. Never raises.

        Args:
            topic: The MQTT topic to publish to.
            payload: ``str``/``bytes`` as-is; anything else is JSON encoded.
            qos: Quality of service level.

        Returns:
            True when the client accepted the message for delivery.
        """
        if not isinstance(payload, (str, bytes, bytearray)):
            payload = json.dumps(payload)
        if not self.connected:
            self.health_status.failed_publishes += 1
            _mqtt_logger.warning("MQTT client not connected. Cannot publish to %s.", topic)
            return False
        try:
            msg_info = self.client.publish(topic, payload, qos=qos)
            if msg_info.rc == mqtt.MQTT_ERR_SUCCESS:
                self.health_status.successful_publishes += 1
                _mqtt_logger.info("Published to %s: %s", topic, payload)
                return True
            self.health_status.failed_publishes += 1
            _mqtt_logger.error("Failed to publish to %s: %s. MQTT result code: %s", topic, payload, msg_info.rc)
        except Exception as e:
            self.health_status.failed_publishes += 1
            self.health_status.record_error(e)
            _mqtt_logger.error("Error publishing to MQTT topic %s: %s", topic, e)
        return False

    def subscribe(self, topic: str, callback: MessageCallback) -> bool:
        """
        Register ``callback`` for messages matching ``topic`` (wildcards allowed).

        The callback is kept even while disconnected; the broker
        subscription is (re)issued on every connect.
        """
        self._register_callback(topic, callback)
        if not self.connected:
            _mqtt_logger.warning("MQTT client not connected; %s will be subscribed on connect.", topic)
            return False
        try:
            result, _mid = self.client.subscribe(topic)
        except Exception as e:
            self.health_status.record_error(e)
            _mqtt_logger.error("Error subscribing to MQTT topic %s: %s", topic, e)
            return False
        if result != mqtt.MQTT_ERR_SUCCESS:
            _mqtt_logger.error("Failed to subscribe to topic %s: result code %s", topic, result)
            return False
        _mqtt_logger.info(
            "Subscribed to topic %s with callback %s (registered callbacks: %s)",
            topic,
            getattr(callback, "__name__", repr(callback)),
            len(self._callbacks),
        )
        return True

    def _register_callback(self, topic: str, callback: MessageCallback) -> None:
        with self._callback_lock:
            self._callbacks.append((topic, callback))
            if topic not in self._topics:
                self._topics.append(topic)
            self.health_status.active_subscriptions = len(self._topics)

    def _dispatch_message(self, client, userdata, msg) -> None:
        """
        Fan out MQTT messages to all registered callbacks that match the topic
        using MQTT wildcard semantics. A failing callback does not stop the others.
        """
        if _LOG_MQTT_DISPATCH:
            _mqtt_logger.debug(
                "MQTT DISPATCHER: topic=%s payload_len=%s registered_callbacks=%s",
                msg.topic,
                len(msg.payload),
                len(self._callbacks),
            )

        with self._callback_lock:
            callbacks = list(self._callbacks)

        handled = False
        for sub, callback in callbacks:
            try:
                if mqtt.topic_matches_sub(sub, msg.topic):
                    handled = True
                    callback(client, userdata, msg)
            except Exception as e:
                _mqtt_logger.error("Error in MQTT callback for topic %s: %s", sub, e, exc_info=True)

        if not handled:
            _mqtt_logger.debug("MQTT message on %s had no registered handlers", msg.topic)

    def __del__(self):
        if getattr(self, "connected", False):
            self.disconnect()
