from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from coaster_stats.states import NOT_AVAILABLE, ConnectivityState

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H-%M"
MONTH_FORMAT = "%Y-%m"


@dataclass(frozen=True)
class TimeBucket:
    month: str
    date: str
    time: str

    @classmethod
    def from_datetime(cls, moment: datetime) -> "TimeBucket":
        return cls(
            month=moment.strftime(MONTH_FORMAT),
            date=moment.strftime(DATE_FORMAT),
            time=moment.strftime(TIME_FORMAT),
        )


@dataclass(frozen=True)
class HostObservation:
    """Host-level classifications, shared by every record of a pass."""

    game_state: str = NOT_AVAILABLE
    board_status: str = NOT_AVAILABLE
    programmer: str = NOT_AVAILABLE
    port: str = NOT_AVAILABLE
    board_type: str = NOT_AVAILABLE
    default_output: str = NOT_AVAILABLE
    volume: str = NOT_AVAILABLE
    remote_access_assigned: str = NOT_AVAILABLE
    remote_id_state: str = NOT_AVAILABLE
    monitoring_teamviewer_id: str = NOT_AVAILABLE
    monitoring_key: str = NOT_AVAILABLE
    monitoring_country: str = NOT_AVAILABLE
    pc_cpu_temp: str | None = None
    pc_cpu_frequency: str | None = None
    pc_cpu_load: str | None = None
    license: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DeviceObservation:
    """Per-device readings. Raw thermal values are converted by the builder."""

    serial: str
    device_count: str
    device_state: str
    version: str | None = None
    battery_percent: str | None = None
    charging: str = NOT_AVAILABLE
    screen_state: str | None = None
    max_charging_current: str | None = None
    max_charging_voltage: str | None = None
    charge_counter: str | None = None
    battery_health: str = NOT_AVAILABLE
    thermal: dict[str, str | None] = field(default_factory=dict)

    @classmethod
    def placeholder(cls, device_state: ConnectivityState | str) -> "DeviceObservation":
        return cls(serial=NOT_AVAILABLE, device_count="0", device_state=str(device_state))


@dataclass
class PassContext:
    """State threaded through one pass instead of module globals."""

    bucket: TimeBucket
    host: HostObservation = field(default_factory=HostObservation)

    @classmethod
    def start(cls, moment: datetime | None = None) -> "PassContext":
        return cls(bucket=TimeBucket.from_datetime(moment or datetime.now()))
