"""
Helpers for constructing MQTT clients that work across paho-mqtt 1.x and 2.x.

paho 2.x requires a callback API version; the handlers in this package use
the v1 (client, userdata, msg) signatures, so that version is selected when
the enum exists and the argument is left out on 1.x.
"""
from __future__ import annotations

from typing import Any, Dict

import paho.mqtt.client as mqtt


def _legacy_callback_api_version() -> Any | None:
    callback_api_version = getattr(mqtt, "CallbackAPIVersion", None)
    if callback_api_version is None:
        return None
    for attr in ("VERSION1", "V1"):
        if hasattr(callback_api_version, attr):
            return getattr(callback_api_version, attr)
    return None


def create_mqtt_client(
    client_id: str = "",
    *,
    username: str | None = None,
    password: str | None = None,
    **kwargs: Any,
) -> mqtt.Client:
    """
    Build an MQTT client with v1 callbacks on any supported paho release.

    Args:
        client_id: Optional client identifier.
        username: Broker username; credentials are set only when given.
        password: Broker password.
        kwargs: Extra keyword arguments forwarded to the client constructor.
    """
    client_kwargs: Dict[str, Any] = {"client_id": client_id or ""}
    client_kwargs["protocol"] = kwargs.pop("protocol", getattr(mqtt, "MQTTv311", 4))
    client_kwargs.update(kwargs)

    callback_value = _legacy_callback_api_version()
    if callback_value is not None:
        client_kwargs["callback_api_version"] = callback_value

    try:
        client = mqtt.Client(**client_kwargs)
    except TypeError:
        # paho 1.x has no callback_api_version argument
        client_kwargs.pop("callback_api_version", None)
        client = mqtt.Client(**client_kwargs)

    if username:
        client.username_pw_set(username, password or None)
    return client
