"""Coaster stats headset and host telemetry agent."""

from coaster_stats.config import AppConfig, load_config
from coaster_stats.delivery import DeliveryStatus, RemoteDelivery
from coaster_stats.orchestrator import Orchestrator
from coaster_stats.record import Record, RecordBuilder
from coaster_stats.schema import validate_payload
from coaster_stats.signals import ShellSignalSource, SignalSource

__all__ = [
    "AppConfig",
    "DeliveryStatus",
    "Orchestrator",
    "Record",
    "RecordBuilder",
    "RemoteDelivery",
    "ShellSignalSource",
    "SignalSource",
    "load_config",
    "validate_payload",
]
