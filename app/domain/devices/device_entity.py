"""
Device Domain Entities
======================

Registered controllers and the parameter catalog their templates expose.

- DeviceTemplate: hardware model ("WKM" water meter, pump controller, ...)
- Parameter: one reported or stored field, addressed in telemetry by ``type``
- Registration: one physical unit bound to an owner, topic and serial number
- ParameterValue: latest value of one parameter for one registration
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any

from app.enums.device import DeviceStatus
from app.utils.time import coerce_datetime


@dataclass(frozen=True)
class DeviceTemplate:
    """Immutable hardware model description."""

    template_id: int | None = None
    abbreviation: str = ""
    model: str = ""
    kind: str = ""
    brand: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "template_id": self.template_id,
            "abbreviation": self.abbreviation,
            "model": self.model,
            "kind": self.kind,
            "brand": self.brand,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> DeviceTemplate:
        return DeviceTemplate(
            template_id=data.get("template_id"),
            abbreviation=data.get("abbreviation", ""),
            model=data.get("model", ""),
            kind=data.get("kind", ""),
            brand=data.get("brand", ""),
        )


@dataclass(frozen=True)
class Parameter:
    """
    A named quantity a template reports or stores.

    Attributes:
        parameter_id: Primary key
        name: Display name ("Potencial de hidrógeno")
        type: Key used inside telemetry payloads ("ph")
        initial_value: Template default seeded on registration
    """

    parameter_id: int | None = None
    name: str = ""
    type: str = ""
    initial_value: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "parameter_id": self.parameter_id,
            "name": self.name,
            "type": self.type,
            "initial_value": self.initial_value,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Parameter:
        return Parameter(
            parameter_id=data.get("parameter_id"),
            name=data.get("name", ""),
            type=data.get("type", ""),
            initial_value=data.get("initial_value"),
        )


@dataclass
class Registration:
    """
    A physical controller registered to an owner.

    Attributes:
        registration_id: Primary key
        owner_id: Owning user
        template_id: Hardware model
        topic: Base MQTT topic, ``<template>/<abbrev>/<serial>``
        serial_number: Globally unique serial, last topic level
        name: Owner-chosen label
        status: Liveness status, offline until the first message arrives
        last_seen_at: UTC time of the last ingested message
        created_at: UTC creation time
    """

    registration_id: int | None = None
    owner_id: int | None = None
    template_id: int | None = None
    topic: str = ""
    serial_number: str = ""
    name: str = ""
    status: DeviceStatus = DeviceStatus.OFFLINE
    last_seen_at: datetime.datetime | None = None
    created_at: datetime.datetime | None = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = DeviceStatus(self.status)

    @property
    def is_online(self) -> bool:
        return self.status == DeviceStatus.ONLINE

    def command_topic(self, suffix: str = "/in") -> str:
        """Topic the controller listens on for commands."""
        return f"{self.topic}{suffix}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "owner_id": self.owner_id,
            "template_id": self.template_id,
            "topic": self.topic,
            "serial_number": self.serial_number,
            "name": self.name,
            "status": self.status.value,
            "last_seen_at": self.last_seen_at.isoformat() if self.last_seen_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Registration:
        return Registration(
            registration_id=data.get("registration_id"),
            owner_id=data.get("owner_id"),
            template_id=data.get("template_id"),
            topic=data.get("topic", ""),
            serial_number=data.get("serial_number", ""),
            name=data.get("name") or "",
            status=data.get("status") or DeviceStatus.OFFLINE,
            last_seen_at=coerce_datetime(data.get("last_seen_at")),
            created_at=coerce_datetime(data.get("created_at")),
        )


@dataclass
class ParameterValue:
    registration_id: int
    parameter_id: int
    value: str | None = None
    parameter_type: str = field(default="", compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "parameter_id": self.parameter_id,
            "value": self.value,
            "parameter_type": self.parameter_type,
        }
