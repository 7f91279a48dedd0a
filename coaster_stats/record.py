"""Fixed-schema telemetry record and its builder.

Column order is shared by the CSV log and the JSON payload. New columns may
only ever be appended at the end.
"""

from __future__ import annotations

from dataclasses import astuple, dataclass, fields
from decimal import ROUND_DOWN, Decimal, InvalidOperation
import logging
import re
from typing import Any

from coaster_stats.context import DeviceObservation, PassContext
from coaster_stats.signals import LICENSE_FIELDS, ProcessSample
from coaster_stats.states import NOT_AVAILABLE

MAX_FIELD_LENGTH = 200
PID_LENGTH = 20
USAGE_LENGTH = 10
ARGS_LENGTH = 100

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


@dataclass(frozen=True)
class Record:
    date: str
    time: str
    num_devices: str
    serial: str
    version_oculus: str
    battery_percent: str
    fast_charging: str
    screen_state: str
    device_state: str
    game_closed: str
    rilix_board: str
    arduino_programmer: str
    arduino_port: str
    arduino_type: str
    default_output: str
    volume: str
    teamviewer_assigned: str
    anydesk_id_state: str
    database_teamviewer_id: str
    database_key: str
    database_country: str
    max_charging_current: str
    max_charging_voltage: str
    charge_counter: str
    battery_health: str
    pid_quest: str
    cpu_quest: str
    mem_quest: str
    args_quest: str
    pc_cpu_temp: str
    pc_cpu_frequency: str
    pc_cpu_load: str
    quest_cpu_temp1: str
    quest_cpu_temp2: str
    quest_md1_temp: str
    quest_io_chip_temp: str
    license_key: str
    license_label: str
    license_activation_id: str
    license_serial_motherboard: str
    license_serial_disk: str
    license_serial_hardware: str

    def as_row(self) -> list[str]:
        return list(astuple(self))

    def as_payload(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in FIELD_NAMES}


FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in fields(Record))

HEADER: tuple[str, ...] = (
    "Date",
    "Time",
    "NºDevices",
    "Serial",
    "Version Oculus",
    "Battery %",
    "Fast Charging?",
    "Screen State",
    "Device State",
    "Game closed?",
    "Rilix Board",
    "Arduino Programmer",
    "Arduino Port",
    "Arduino Type",
    "Default Output",
    "Volume",
    "TeamViewer Assigned?",
    "AnydeskID state",
    "Database TeamViewer ID",
    "Database KEY",
    "Database Country",
    "Max Charging Current",
    "Max Charging Voltage",
    "Charge Counter",
    "Battery Health %",
    "PID quest",
    "%CPU quest",
    "%MEM quest",
    "ARGS quest",
    "PC CPU Temp",
    "PC CPU Frequency",
    "PC CPU Load",
    "quest CPU Temp 1",
    "quest CPU Temp 2",
    "quest MD1 Temp",
    "quest IO Chip Temp",
    "License Key",
    "License Label",
    "License Activation ID",
    "License Serial MB",
    "License Serial Disk",
    "License Serial HW",
)

if len(HEADER) != len(FIELD_NAMES):
    raise RuntimeError("Record fields and log header are out of sync")

SERIAL_COLUMN = FIELD_NAMES.index("serial")


def sanitize_field(value: Any, limit: int = MAX_FIELD_LENGTH) -> str:
    """Strip control characters and truncate; blank values become ``N/A``."""
    if value is None:
        return NOT_AVAILABLE
    text = _CONTROL_CHARS.sub("", str(value))[:limit]
    return text if text.strip() else NOT_AVAILABLE


def sanitize_process_field(value: Any, limit: int) -> str:
    if value is None:
        return NOT_AVAILABLE
    return sanitize_field(str(value).replace('"', ""), limit)


def _decimal(raw: str | None) -> Decimal | None:
    if raw is None:
        return None
    try:
        number = Decimal(str(raw).strip().replace(",", "."))
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _one_decimal(number: Decimal) -> str:
    return str(number.quantize(Decimal("0.1"), rounding=ROUND_DOWN))


def convert_millidegrees(raw: str | None) -> str:
    number = _decimal(raw)
    if number is None or number <= 0:
        return NOT_AVAILABLE
    return _one_decimal(number / 1000)


def convert_khz(raw: str | None) -> str:
    number = _decimal(raw)
    if number is None or number <= 0:
        return NOT_AVAILABLE
    return f"{_one_decimal(number / 1000)}MHz"


def format_celsius(raw: str | None) -> str:
    number = _decimal(raw)
    if number is None or number <= 0:
        return NOT_AVAILABLE
    return _one_decimal(number)


def format_load(raw: str | None) -> str:
    number = _decimal(raw)
    if number is None or number < 0:
        return NOT_AVAILABLE
    return f"{_one_decimal(number)}%"


class RecordBuilder:
    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    def build(
        self,
        context: PassContext,
        device: DeviceObservation,
        process: ProcessSample | None = None,
    ) -> Record:
        host = context.host
        license_values = [host.license.get(name) for name in LICENSE_FIELDS]
        thermal = device.thermal
        values = [
            context.bucket.date,
            context.bucket.time,
            device.device_count,
            device.serial,
            device.version,
            device.battery_percent,
            device.charging,
            device.screen_state,
            device.device_state,
            host.game_state,
            host.board_status,
            host.programmer,
            host.port,
            host.board_type,
            host.default_output,
            host.volume,
            host.remote_access_assigned,
            host.remote_id_state,
            host.monitoring_teamviewer_id,
            host.monitoring_key,
            host.monitoring_country,
            device.max_charging_current,
            device.max_charging_voltage,
            device.charge_counter,
            device.battery_health,
        ]
        fields_out = [sanitize_field(value) for value in values]
        if process is not None:
            fields_out.extend(
                [
                    sanitize_process_field(process.pid, PID_LENGTH),
                    sanitize_process_field(process.cpu, USAGE_LENGTH),
                    sanitize_process_field(process.mem, USAGE_LENGTH),
                    sanitize_process_field(process.args, ARGS_LENGTH),
                ]
            )
        else:
            fields_out.extend([NOT_AVAILABLE] * 4)
        fields_out.extend(
            [
                format_celsius(host.pc_cpu_temp),
                convert_khz(host.pc_cpu_frequency),
                format_load(host.pc_cpu_load),
                convert_millidegrees(thermal.get("cpu_temp1")),
                convert_millidegrees(thermal.get("cpu_temp2")),
                convert_millidegrees(thermal.get("md1_temp")),
                convert_millidegrees(thermal.get("io_chip_temp")),
            ]
        )
        fields_out.extend(sanitize_field(value) for value in license_values)
        record = Record(*fields_out)
        self.logger.debug(
            "Built record for serial %s (pid %s).", record.serial, record.pid_quest
        )
        return record
