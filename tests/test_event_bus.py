import unittest

from app.enums.device import DeviceStatus
from app.enums.events import DeviceEvent
from app.schemas.events import DeviceStatusChangedPayload
from app.utils.event_bus import EventBus


class TestEventBus(unittest.TestCase):
    """Unit tests for the EventBus module."""

    def setUp(self):
        self.event_bus = EventBus(queue_size=16, worker_count=1)
        self.received = []

    def tearDown(self):
        self.event_bus.shutdown()

    def event_listener(self, data):
        self.received.append(data)

    def test_subscribe_and_publish(self):
        self.event_bus.subscribe("test_event", self.event_listener)
        self.event_bus.publish("test_event", {"key": "value"})

        self.assertTrue(self.event_bus.wait_until_idle())
        self.assertEqual(self.received, [{"key": "value"}])

    def test_multiple_subscribers(self):
        other = []
        self.event_bus.subscribe(DeviceEvent.TELEMETRY_INGESTED, self.event_listener)
        self.event_bus.subscribe(DeviceEvent.TELEMETRY_INGESTED, other.append)
        self.event_bus.publish(DeviceEvent.TELEMETRY_INGESTED, {"message": "Hello"})

        self.event_bus.wait_until_idle()
        self.assertEqual(self.received, [{"message": "Hello"}])
        self.assertEqual(other, [{"message": "Hello"}])

    def test_pydantic_payload_is_delivered_as_dict(self):
        self.event_bus.subscribe(DeviceEvent.DEVICE_STATUS_CHANGED, self.event_listener)
        self.event_bus.publish(
            DeviceEvent.DEVICE_STATUS_CHANGED,
            DeviceStatusChangedPayload(
                registration_id=1,
                serial_number="WK0001",
                owner_id=1,
                previous_status=DeviceStatus.ONLINE,
                status=DeviceStatus.OFFLINE,
                timestamp="2026-01-05T13:00:00+00:00",
            ),
        )

        self.event_bus.wait_until_idle()
        self.assertEqual(self.received[0]["status"], "offline")
        self.assertEqual(self.received[0]["serial_number"], "WK0001")

    def test_unsubscribe_stops_delivery(self):
        unsubscribe = self.event_bus.subscribe("test_event", self.event_listener)
        unsubscribe()
        self.event_bus.publish("test_event", {"key": "value"})

        self.event_bus.wait_until_idle()
        self.assertEqual(self.received, [])

    def test_failing_subscriber_does_not_block_others(self):
        def broken(_data):
            raise RuntimeError("boom")

        self.event_bus.subscribe("test_event", broken)
        self.event_bus.subscribe("test_event", self.event_listener)
        self.event_bus.publish("test_event", 1)

        self.event_bus.wait_until_idle()
        self.assertEqual(self.received, [1])

    def test_no_subscribers(self):
        try:
            self.event_bus.publish("unsubscribed_event", {"data": "test"})
        except Exception as e:
            self.fail(f"Event publishing failed unexpectedly: {e}")


if __name__ == "__main__":
    unittest.main()
