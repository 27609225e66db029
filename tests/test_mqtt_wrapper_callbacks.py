import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import paho.mqtt.client as mqtt

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.enums.events import DeviceEvent
from app.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper


class DummyMessage:
    def __init__(self, topic: str, payload: bytes):
        self.topic = topic
        self.payload = payload


class DummyClient:
    def __init__(self, publish_rc=0, connect_error=None):
        self.on_message = None
        self.subscriptions = []
        self.published = []
        self.publish_rc = publish_rc
        self.connect_error = connect_error
        self.connect_calls = []
        self.reconnect_delay = None
        self.loop_started = False
        self.loop_stopped = False
        self.disconnected = False

    def reconnect_delay_set(self, min_delay=1, max_delay=120):
        self.reconnect_delay = (min_delay, max_delay)

    def connect_async(self, *args, **_kwargs):
        self.connect_calls.append(args)
        if self.connect_error is not None:
            raise self.connect_error

    def loop_start(self):
        self.loop_started = True

    def disconnect(self):
        self.disconnected = True

    def loop_stop(self):
        self.loop_stopped = True

    def subscribe(self, topic):
        self.subscriptions.append(topic)
        return (0, len(self.subscriptions))

    def publish(self, topic, payload, qos=0):
        self.published.append((topic, payload, qos))
        return SimpleNamespace(rc=self.publish_rc, topic=topic, payload=payload)


def build_wrapper(dummy_client: DummyClient, *, broker_up: bool = True, **kwargs) -> MQTTClientWrapper:
    with patch(
        "app.hardware.mqtt.mqtt_broker_wrapper.create_mqtt_client",
        return_value=dummy_client,
    ):
        wrapper = MQTTClientWrapper(broker="test", port=1883, **kwargs)
    if broker_up and kwargs.get("connect", True):
        # Stand in for the network loop reaching the broker
        wrapper._on_connect(dummy_client, None, {}, 0)
    return wrapper


def test_wrapper_fans_out_callbacks_without_overwrite():
    dummy_client = DummyClient()
    wrapper = build_wrapper(dummy_client)
    events = []

    def telemetry_cb(_client, _userdata, msg):
        events.append(("telemetry", msg.topic, msg.payload))

    def audit_cb(_client, _userdata, msg):
        events.append(("audit", msg.topic))

    wrapper.subscribe("+/+/+", telemetry_cb)
    wrapper.subscribe("riego/WK/#", audit_cb)

    wrapper._dispatch_message(wrapper.client, None, DummyMessage("riego/WK/WK0001", b'{"ph":7}'))
    wrapper._dispatch_message(wrapper.client, None, DummyMessage("riego/WK/WK0001/in", b"{}"))

    assert ("telemetry", "riego/WK/WK0001", b'{"ph":7}') in events
    assert ("audit", "riego/WK/WK0001") in events
    assert ("audit", "riego/WK/WK0001/in") in events
    # Four levels never match the three-level telemetry pattern
    assert ("telemetry", "riego/WK/WK0001/in", b"{}") not in events
    assert wrapper.client.on_message == wrapper._dispatch_message


def test_failing_callback_does_not_stop_the_others():
    wrapper = build_wrapper(DummyClient())
    hits = []

    def broken(_client, _userdata, _msg):
        raise RuntimeError("boom")

    wrapper.subscribe("+/+/+", broken)
    wrapper.subscribe("+/+/+", lambda _c, _u, msg: hits.append(msg.topic))

    wrapper._dispatch_message(wrapper.client, None, DummyMessage("riego/WK/WK0001", b"{}"))

    assert hits == ["riego/WK/WK0001"]


def test_publish_encodes_dicts_and_reports_acceptance():
    dummy_client = DummyClient()
    wrapper = build_wrapper(dummy_client)

    assert wrapper.publish("riego/WK/WK0001/in", {"bomba": "encendida", "valvula": "cerrada"}) is True

    topic, payload, qos = dummy_client.published[0]
    assert topic == "riego/WK/WK0001/in"
    assert payload == '{"bomba": "encendida", "valvula": "cerrada"}'
    assert qos == 0
    assert wrapper.health_status.successful_publishes == 1


def test_publish_rejected_by_client_returns_false():
    wrapper = build_wrapper(DummyClient(publish_rc=mqtt.MQTT_ERR_NO_CONN))

    assert wrapper.publish("riego/WK/WK0001/in", "{}") is False
    assert wrapper.health_status.failed_publishes == 1


def test_publish_while_disconnected_returns_false():
    dummy_client = DummyClient()
    wrapper = build_wrapper(dummy_client)
    wrapper.connected = False

    assert wrapper.publish("riego/WK/WK0001/in", "{}") is False
    assert dummy_client.published == []


def test_subscriptions_are_reissued_on_connect():
    dummy_client = DummyClient()
    wrapper = build_wrapper(dummy_client, connect=False)

    assert wrapper.subscribe("+/+/+", lambda *_: None) is False
    assert dummy_client.subscriptions == []

    wrapper._on_connect(dummy_client, None, {}, 0)

    assert dummy_client.subscriptions == ["+/+/+"]
    assert wrapper.connected is True


def test_refused_connect_keeps_wrapper_disconnected():
    dummy_client = DummyClient()
    wrapper = build_wrapper(dummy_client, connect=False)

    wrapper._on_connect(dummy_client, None, {}, 5)

    assert wrapper.connected is False
    assert wrapper.health_status.last_error == "connect rc=5"


def test_connectivity_changes_reach_the_event_bus():
    bus = MagicMock()
    dummy_client = DummyClient()
    wrapper = build_wrapper(dummy_client, event_bus=bus)

    wrapper._on_disconnect(dummy_client, None, 7)

    event_name, payload = bus.publish.call_args.args
    assert event_name == DeviceEvent.CONNECTIVITY_CHANGED
    assert payload.status == "disconnected"
    assert wrapper.connected is False


def test_unreachable_broker_at_startup_still_starts_network_loop():
    dummy_client = DummyClient()
    wrapper = build_wrapper(dummy_client, broker_up=False)

    assert dummy_client.connect_calls == [("test", 1883, 60)]
    assert dummy_client.loop_started is True
    assert dummy_client.reconnect_delay is not None
    assert wrapper.connected is False
    assert wrapper.publish("riego/WK/WK0001/in", "{}") is False

    # Broker comes up later; the running loop completes the connect
    wrapper._on_connect(dummy_client, None, {}, 0)

    assert wrapper.connected is True
    assert wrapper.publish("riego/WK/WK0001/in", "{}") is True


def test_connect_announced_once_the_broker_answers():
    bus = MagicMock()
    dummy_client = DummyClient()
    wrapper = build_wrapper(dummy_client, event_bus=bus, broker_up=False)

    bus.publish.assert_not_called()

    wrapper._on_connect(dummy_client, None, {}, 0)

    event_name, payload = bus.publish.call_args.args
    assert event_name == DeviceEvent.CONNECTIVITY_CHANGED
    assert payload.status == "connected"


def test_connect_setup_error_is_recorded():
    dummy_client = DummyClient(connect_error=ValueError("bad host"))
    wrapper = build_wrapper(dummy_client, broker_up=False)

    assert wrapper.connected is False
    assert wrapper.health_status.last_error == "bad host"


def test_disconnect_after_drop_still_stops_network_loop():
    dummy_client = DummyClient()
    wrapper = build_wrapper(dummy_client)
    wrapper._on_disconnect(dummy_client, None, 7)

    wrapper.disconnect()

    assert dummy_client.loop_stopped is True
    assert dummy_client.disconnected is False
    assert wrapper.connected is False


def test_disconnect_while_connected_closes_session():
    dummy_client = DummyClient()
    wrapper = build_wrapper(dummy_client)

    wrapper.disconnect()

    assert dummy_client.disconnected is True
    assert dummy_client.loop_stopped is True
