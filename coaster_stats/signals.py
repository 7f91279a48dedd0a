"""Signal sources for the host PC and attached headsets.

A :class:`SignalSource` returns raw tool output (or ``None`` when the tool
could not be run); the parse helpers in this module turn that text into
typed samples. Nothing here classifies: see :mod:`coaster_stats.classifier`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import pwd
import re
import subprocess
from typing import Any, Protocol

import psutil
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from coaster_stats.config import CollectorConfig
from coaster_stats.logging_utils import TRACE_LEVEL

DEVICE_LIST_HEADER = "list of devices attached"

# Thermal zones exposed by the headset, in log column order.
THERMAL_ZONES = {
    "cpu_temp1": 2,
    "cpu_temp2": 5,
    "md1_temp": 4,
    "io_chip_temp": 3,
}

LICENSE_FIELDS = (
    "key",
    "label",
    "activationId",
    "serialMotherboard",
    "serialDisk",
    "serialHardware",
)


@dataclass(frozen=True)
class DeviceListing:
    raw: str | None
    header_present: bool
    count: int
    states: dict[str, str] = field(default_factory=dict)

    def serials_in_state(self, state: str) -> list[str]:
        return [serial for serial, value in self.states.items() if value == state]

    @property
    def healthy(self) -> list[str]:
        return self.serials_in_state("device")

    @property
    def unauthorized(self) -> list[str]:
        return self.serials_in_state("unauthorized")


@dataclass(frozen=True)
class BatteryReport:
    level: str | None = None
    max_charging_current: str | None = None
    max_charging_voltage: str | None = None
    charge_counter: str | None = None


@dataclass(frozen=True)
class ProcessSample:
    pid: str
    cpu: str
    mem: str
    args: str

    @property
    def cpu_value(self) -> float:
        try:
            return float(self.cpu.replace(",", "."))
        except ValueError:
            return 0.0


@dataclass(frozen=True)
class SinkReport:
    name: str | None
    volume: int | None
    muted: bool


class SignalSource(Protocol):
    """One method per signal family. ``None`` means the lookup itself failed."""

    def device_listing(self) -> str | None: ...

    def device_state(self, serial: str) -> str | None: ...

    def headset_version(self, serial: str) -> str | None: ...

    def battery_report(self, serial: str) -> str | None: ...

    def power_report(self, serial: str) -> str | None: ...

    def thermal_zone(self, serial: str, zone: int) -> str | None: ...

    def process_table(self, serial: str) -> str | None: ...

    def usb_devices(self) -> str | None: ...

    def mixer_info(self) -> str | None: ...

    def mixer_sinks(self) -> str | None: ...

    def board_list(self) -> str | None: ...

    def ide_preferences(self) -> str | None: ...

    def remote_access_config(self) -> str | None: ...

    def remote_access_id(self) -> str | None: ...

    def monitoring_config(self) -> str | None: ...

    def host_processes(self) -> list[str] | None: ...

    def host_cpu_temperature(self) -> str | None: ...

    def host_cpu_frequency(self) -> str | None: ...

    def host_cpu_load(self) -> str | None: ...

    def license_info(self) -> dict[str, Any] | None: ...


def parse_device_listing(raw: str | None) -> DeviceListing:
    """Parse ``adb devices`` output.

    The count excludes the header line; an empty or missing listing yields a
    negative count, which the classifier treats as a critical failure.
    """
    if not raw or not raw.strip():
        return DeviceListing(raw=raw, header_present=False, count=-1)
    lines = [line for line in raw.splitlines() if line.strip()]
    header_present = any(line.strip().lower() == DEVICE_LIST_HEADER for line in lines)
    states: dict[str, str] = {}
    for line in lines[1:]:
        parts = line.split()
        if len(parts) >= 2:
            states[parts[0]] = parts[1]
    return DeviceListing(
        raw=raw,
        header_present=header_present,
        count=len(lines) - 1,
        states=states,
    )


def _match_value(text: str | None, pattern: str) -> str | None:
    if not text:
        return None
    match = re.search(pattern, text, re.MULTILINE)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def parse_battery_report(raw: str | None) -> BatteryReport:
    """Parse ``dumpsys battery`` output."""
    return BatteryReport(
        level=_match_value(raw, r"^\s*level:\s*(\S+)"),
        max_charging_current=_match_value(raw, r"Max charging current:\s*(\S+)"),
        max_charging_voltage=_match_value(raw, r"Max charging voltage:\s*(\S+)"),
        charge_counter=_match_value(raw, r"Charge counter:\s*(\S+)"),
    )


def parse_wakefulness(raw: str | None) -> str | None:
    return _match_value(raw, r"mWakefulness=(\S+)")


def parse_version(raw: str | None) -> str | None:
    return _match_value(raw, r"versionName=(\S+)")


def parse_process_table(raw: str | None, limit: int = 3) -> list[ProcessSample]:
    """Parse ``top -b -n 1 -o %CPU,%MEM,PID,ARGS`` and rank by CPU descending."""
    if not raw:
        return []
    samples: list[ProcessSample] = []
    row = re.compile(r"^\s*([\d.,]+)\s+([\d.,]+)\s+(\d+)\s+(.+?)\s*$")
    for line in raw.splitlines():
        match = row.match(line)
        if not match:
            continue
        cpu, mem, pid, args = match.groups()
        samples.append(ProcessSample(pid=pid, cpu=cpu, mem=mem, args=args))
    samples.sort(key=lambda sample: sample.cpu_value, reverse=True)
    return samples[:limit]


def parse_default_sink(info: str | None) -> str | None:
    return _match_value(info, r"Default Sink:\s*(.+)$")


def parse_sink(sinks: str | None, name: str | None) -> SinkReport:
    """Find the named sink block in ``pactl list sinks`` and read its state."""
    if not sinks or not name:
        return SinkReport(name=name, volume=None, muted=False)
    blocks = re.split(r"^Sink #", sinks, flags=re.MULTILINE)
    for block in blocks:
        if not re.search(rf"Name:\s*{re.escape(name)}\s*$", block, re.MULTILINE):
            continue
        volume = None
        volume_match = re.search(r"front-right:.*?(\d+)%", block)
        if volume_match:
            volume = int(volume_match.group(1))
        mute_match = re.search(r"Mute:\s*(\S+)", block)
        muted = bool(mute_match and mute_match.group(1).lower() == "yes")
        return SinkReport(name=name, volume=volume, muted=muted)
    return SinkReport(name=name, volume=None, muted=False)


def parse_monitoring_config(raw: str | None) -> dict[str, str | None]:
    """Extract the quoted assignments from the database monitoring script."""
    return {
        "teamviewer_id": _match_value(raw, r'TEAMVIEWER_CLIENTE="(.*)"'),
        "key": _match_value(raw, r'(?<![A-Z_])KEY="(.*)"'),
        "country": _match_value(raw, r'COUNTRIE="(.*)"'),
    }


class ShellSignalSource:
    """Production adapter that shells out to the real tools."""

    def __init__(self, config: CollectorConfig) -> None:
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)
        self._session: requests.Session | None = None

    # -- headset (adb) -----------------------------------------------------

    def device_listing(self) -> str | None:
        return self._run_command([self.config.adb_path, "devices"])

    def device_state(self, serial: str) -> str | None:
        output = self._run_command([self.config.adb_path, "-s", serial, "get-state"])
        return output.strip() if output else None

    def headset_version(self, serial: str) -> str | None:
        return self._adb_shell(
            serial, ["dumpsys", "package", self.config.headset_package]
        )

    def battery_report(self, serial: str) -> str | None:
        return self._adb_shell(serial, ["dumpsys", "battery"])

    def power_report(self, serial: str) -> str | None:
        return self._adb_shell(serial, ["dumpsys", "power"])

    def thermal_zone(self, serial: str, zone: int) -> str | None:
        output = self._adb_shell(
            serial, ["cat", f"/sys/class/thermal/thermal_zone{zone}/temp"]
        )
        return output.strip() if output else None

    def process_table(self, serial: str) -> str | None:
        return self._adb_shell(
            serial, ["top", "-b", "-n", "1", "-o", "%CPU,%MEM,PID,ARGS"]
        )

    # -- host tools --------------------------------------------------------

    def usb_devices(self) -> str | None:
        return self._run_command([self.config.lsusb_path])

    def mixer_info(self) -> str | None:
        return self._run_command(self._as_user([self.config.pactl_path, "info"]))

    def mixer_sinks(self) -> str | None:
        return self._run_command(
            self._as_user([self.config.pactl_path, "list", "sinks"])
        )

    def board_list(self) -> str | None:
        return self._run_command(
            self._as_user([self.config.arduino_cli_path, "board", "list"])
        )

    def ide_preferences(self) -> str | None:
        return self._read_file(self.config.arduino_preferences)

    def remote_access_config(self) -> str | None:
        return self._read_file(self.config.teamviewer_config)

    def remote_access_id(self) -> str | None:
        output = self._run_command([self.config.anydesk_path, "--get-id"])
        return output.strip() if output else None

    def monitoring_config(self) -> str | None:
        return self._read_file(self.config.monitoring_config)

    def host_processes(self) -> list[str] | None:
        try:
            commands: list[str] = []
            for proc in psutil.process_iter(["name", "cmdline"]):
                cmdline = proc.info.get("cmdline") or []
                commands.append(" ".join(cmdline) or (proc.info.get("name") or ""))
            return commands
        except psutil.Error:
            self.logger.debug("Failed to enumerate host processes.")
            return None

    def host_cpu_temperature(self) -> str | None:
        try:
            temps = psutil.sensors_temperatures()
        except AttributeError:
            self.logger.debug("Temperature sensors not supported on this platform.")
            return None
        for entry in temps.get("coretemp", []):
            if entry.label == "Package id 0":
                return str(entry.current)
        return None

    def host_cpu_frequency(self) -> str | None:
        value = self._read_file(self.config.cpu_freq_path)
        return value.strip() if value else None

    def host_cpu_load(self) -> str | None:
        try:
            times = psutil.cpu_times_percent(interval=self.config.cpu_sample_s)
        except (OSError, psutil.Error):
            self.logger.debug("Failed to sample CPU load.")
            return None
        return str(times.user + times.system)

    def license_info(self) -> dict[str, Any] | None:
        try:
            response = self._http().get(
                self.config.license_url, timeout=self.config.license_timeout_s
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError):
            self.logger.debug("Failed to fetch license info from %s", self.config.license_url)
            return None
        if self.logger.isEnabledFor(TRACE_LEVEL):
            self.logger.log(TRACE_LEVEL, "License payload: %s", payload)
        return payload if isinstance(payload, dict) else None

    # -- helpers -----------------------------------------------------------

    def _http(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            retry = Retry(total=1, backoff_factor=0.5)
            self._session.mount("http://", HTTPAdapter(max_retries=retry))
            self._session.mount("https://", HTTPAdapter(max_retries=retry))
        return self._session

    def _adb_shell(self, serial: str, command: list[str]) -> str | None:
        return self._run_command(
            [self.config.adb_path, "-s", serial, "shell", *command]
        )

    def _as_user(self, command: list[str]) -> list[str]:
        user = self.config.run_as_user
        if not user:
            return command
        try:
            uid = pwd.getpwnam(user).pw_uid
        except KeyError:
            self.logger.debug("User %s not found; running %s directly.", user, command[0])
            return command
        return ["sudo", "-u", user, f"XDG_RUNTIME_DIR=/run/user/{uid}", *command]

    def _run_command(self, command: list[str]) -> str | None:
        try:
            result = subprocess.run(
                command,
                check=False,
                text=True,
                capture_output=True,
                timeout=self.config.command_timeout_s,
            )
        except FileNotFoundError:
            self.logger.debug("Command not found: %s", command[0])
            return None
        except subprocess.TimeoutExpired:
            self.logger.warning("Command timed out: %s", " ".join(command))
            return None
        if result.returncode != 0:
            self.logger.debug(
                "Command failed (%s): %s", result.returncode, " ".join(command)
            )
            if result.stderr:
                self.logger.log(TRACE_LEVEL, "stderr: %s", result.stderr.strip())
            if not result.stdout:
                return None
        if result.stdout:
            self.logger.log(TRACE_LEVEL, "stdout: %s", result.stdout.strip())
        return result.stdout

    def _read_file(self, path: str) -> str | None:
        """Read a file and return its contents, or None if it can't be read."""
        try:
            return Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None
