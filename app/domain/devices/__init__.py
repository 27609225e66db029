"""
Device Domain Module
====================

Registrations, their template parameter catalog and stored values.
"""

from app.domain.devices.device_entity import DeviceTemplate, Parameter, ParameterValue, Registration
from app.domain.devices.repository import DeviceRepository

__all__ = [
    "DeviceRepository",
    "DeviceTemplate",
    "Parameter",
    "ParameterValue",
    "Registration",
]
