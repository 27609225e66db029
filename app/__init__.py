"""WaterKontrol backend: telemetry ingest, schedule actuation and liveness tracking."""

__version__ = "1.0.0"
