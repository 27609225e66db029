"""
Service protocols (structural typing interfaces).

Protocols let consumer services declare the *minimal* surface they depend on
without importing the concrete class, breaking circular imports and making
tests trivially mockable.

At runtime ``MQTTClientWrapper`` satisfies ``MessageBus`` and ``EventBus``
satisfies ``EventPublisher`` via structural subtyping; no explicit
inheritance needed.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, runtime_checkable


@runtime_checkable
class MessageBus(Protocol):
    """Pub/sub transport to the field controllers."""

    def subscribe(self, topic: str, callback: Callable[[Any, Any, Any], None]) -> bool:
        """Deliver every message matching ``topic`` (MQTT wildcards) to ``callback``."""
        ...

    def publish(self, topic: str, payload: Any) -> bool:
        """Hand one message to the transport; True when accepted. Never raises."""
        ...


@runtime_checkable
class EventPublisher(Protocol):
    """In-process event fan-out."""

    def publish(self, event_name: Any, data: Any | None = None) -> None:
        ...

    def subscribe(self, event_name: Any, callback: Callable[[Any], None]) -> Callable[[], None]:
        ...


@runtime_checkable
class PushSender(Protocol):
    """Delivers a push message to device tokens."""

    def send(self, tokens: list[str], title: str, body: str, data: dict[str, Any] | None = None) -> "PushResult":
        ...


class PushResult(Protocol):
    delivered: int
    stale_tokens: list[str]
