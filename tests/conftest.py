"""Pytest configuration and shared fixtures."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

import pytest

from coaster_stats.config import default_config


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "scenario: mark test as an end-to-end pass scenario"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as touching the real filesystem lock"
    )


NO_DEVICES = "List of devices attached\n\n"
ONE_DEVICE = "List of devices attached\n1WMHH000000001\tdevice\n\n"

BATTERY_REPORT = """Current Battery Service state:
  AC powered: false
  USB powered: true
  Max charging current: 700000
  Max charging voltage: 5000000
  Charge counter: 3880000
  status: 2
  level: 97
  scale: 100
"""

TOP_OUTPUT = """Tasks: 512 total,   1 running, 511 sleeping,   0 stopped,   0 zombie
  Mem:  5802876K total,  5437492K used,   365384K free,    14032K buffers
 Swap:  2097148K total,   412344K used,  1684804K free,  2124408K cached
800%cpu  31%user   0%nice  18%sys 747%idle   0%iow   4%irq   0%sirq   0%host
%CPU %MEM   PID ARGS
 41.3  6.1  1234 com.rilix.coaster
 12.0  2.2  2345 surfaceflinger
 55.1  8.4  3456 com.oculus.vrshell
  3.3  1.0  4567 top -b -n 1
"""

MIXER_INFO = """Server String: /run/user/1000/pulse/native
Default Sink: alsa_output.pci-0000_00_1f.3.analog-stereo
Default Source: alsa_input.pci-0000_00_1f.3.analog-stereo
"""

MIXER_SINKS = """Sink #0
\tState: RUNNING
\tName: alsa_output.pci-0000_00_1f.3.analog-stereo
\tDescription: Built-in Audio Analog Stereo
\tMute: no
\tVolume: front-left: 58982 /  90% / -2.75 dB,   front-right: 58982 /  90% / -2.75 dB
"""

PREFERENCES = """board=micro
programmer=arduino:avrispmkii
serial.port=/dev/ttyACM0
"""

MONITORING = """#!/bin/bash
TEAMVIEWER_CLIENTE="1234567890"
KEY="abcdef123456"
COUNTRIE="BR"
"""


@dataclass
class FakeSignalSource:
    """Fixture-backed signal source; every value is canned text."""

    listing: str | None = NO_DEVICES
    states: dict[str, str] = field(default_factory=dict)
    version: str | None = "    versionName=62.0.0.288.361\n"
    battery: str | None = BATTERY_REPORT
    power: str | None = "  mWakefulness=Awake\n"
    thermal: dict[int, str] = field(
        default_factory=lambda: {2: "45678", 5: "44123", 4: "39000", 3: "0"}
    )
    top: str | None = TOP_OUTPUT
    usb: str | None = "Bus 001 Device 004: ID 2341:8037 Arduino SA Arduino Micro\n"
    info: str | None = MIXER_INFO
    sinks: str | None = MIXER_SINKS
    boards: str | None = "Port         Protocol Type              Board Name\n/dev/ttyACM0 serial   Serial Port (USB) Arduino Micro\n"
    preferences: str | None = PREFERENCES
    teamviewer: str | None = "[str] Owner = rilix@rilix.com.br\n"
    anydesk: str | None = "123456789"
    monitoring: str | None = MONITORING
    processes: list[str] | None = field(
        default_factory=lambda: ["/usr/bin/python3 agent.py", "./RCLauncher.x86_64"]
    )
    cpu_temp: str | None = "47.0"
    cpu_freq: str | None = "2400000"
    cpu_load: str | None = "12.5"
    license: dict[str, Any] | None = field(
        default_factory=lambda: {
            "key": "KEY-1",
            "label": "Coaster BR",
            "activationId": "act-9",
            "serialHardware": "HW-1",
            "serialMotherboard": "MB-1",
            "serialDisk": "DSK-1",
        }
    )
    calls: list[str] = field(default_factory=list)

    def device_listing(self) -> str | None:
        self.calls.append("device_listing")
        return self.listing

    def device_state(self, serial: str) -> str | None:
        return self.states.get(serial)

    def headset_version(self, serial: str) -> str | None:
        return self.version

    def battery_report(self, serial: str) -> str | None:
        return self.battery

    def power_report(self, serial: str) -> str | None:
        return self.power

    def thermal_zone(self, serial: str, zone: int) -> str | None:
        return self.thermal.get(zone)

    def process_table(self, serial: str) -> str | None:
        self.calls.append(f"process_table:{serial}")
        return self.top

    def usb_devices(self) -> str | None:
        return self.usb

    def mixer_info(self) -> str | None:
        return self.info

    def mixer_sinks(self) -> str | None:
        return self.sinks

    def board_list(self) -> str | None:
        return self.boards

    def ide_preferences(self) -> str | None:
        return self.preferences

    def remote_access_config(self) -> str | None:
        return self.teamviewer

    def remote_access_id(self) -> str | None:
        return self.anydesk

    def monitoring_config(self) -> str | None:
        return self.monitoring

    def host_processes(self) -> list[str] | None:
        return self.processes

    def host_cpu_temperature(self) -> str | None:
        return self.cpu_temp

    def host_cpu_frequency(self) -> str | None:
        return self.cpu_freq

    def host_cpu_load(self) -> str | None:
        return self.cpu_load

    def license_info(self) -> dict[str, Any] | None:
        return self.license


@pytest.fixture
def fake_source():
    """A signal source with no devices attached."""
    return FakeSignalSource()


@pytest.fixture
def one_device_source():
    """A signal source with one healthy headset attached."""
    return FakeSignalSource(
        listing=ONE_DEVICE, states={"1WMHH000000001": "device"}
    )


@pytest.fixture
def app_config(tmp_path):
    """Default configuration rooted in a temporary directory."""
    config = default_config()
    agent = replace(
        config.agent,
        log_base_dir=str(tmp_path / "logs"),
        lock_file=str(tmp_path / "run" / "coaster_stats.lock"),
        spool_dir=str(tmp_path),
    )
    remote = replace(config.remote, token="test-token")
    return replace(config, agent=agent, remote=remote)
