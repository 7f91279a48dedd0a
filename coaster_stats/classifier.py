"""Map raw signal text to status enumerations.

Every function here is total: it returns an enum member (or the ``N/A``
sentinel) for any input, including ``None`` for a lookup that failed.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
import re
from typing import Iterable

from coaster_stats.signals import DeviceListing
from coaster_stats.states import (
    NOT_AVAILABLE,
    AudioRouteState,
    BoardState,
    BoardTypeState,
    ChargingState,
    ConnectivityState,
    EntryState,
    GameState,
    PortState,
    ProgrammerState,
    RemoteAccessState,
    RemoteIdState,
)

FAST_CHARGING_MIN_CURRENT = 600000
NOMINAL_CHARGE_COUNTER = 4000000
HEALTH_MIN_BATTERY = 95
LOW_VOLUME_THRESHOLD = 80

_LISTING_ERROR = re.compile(r"error|not found|failed|recover", re.IGNORECASE)
_WRONG_SINK = re.compile(r"dummy|null|discard|invalid|none", re.IGNORECASE)
_GAME_LAUNCHERS = re.compile(r"RCLauncher|BCLauncher")


def _to_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def classify_connectivity(
    listing: DeviceListing, queried_state: str | None
) -> ConnectivityState:
    raw = listing.raw or ""
    if listing.count < 0:
        return ConnectivityState.CRITICAL_ERROR
    if _LISTING_ERROR.search(raw):
        return ConnectivityState.STRANGE_STATE
    lowered = raw.lower()
    if "offline" in lowered:
        return ConnectivityState.OFFLINE_ERROR
    if "unauthorized" in lowered:
        return ConnectivityState.UNAUTHORIZED
    if queried_state is not None and queried_state.strip() == "device":
        return ConnectivityState.DEVICE
    if listing.count == 0 and listing.header_present:
        return ConnectivityState.NOT_FOUND
    return ConnectivityState.UNKNOWN_ERROR


def classify_charging(max_current: str | None) -> ChargingState:
    current = _to_int(max_current)
    if current is None:
        return ChargingState.UNAVAILABLE
    if current >= FAST_CHARGING_MIN_CURRENT:
        return ChargingState.FAST
    return ChargingState.SLOW


def battery_health(battery_percent: str | None, charge_counter: str | None) -> str:
    """Charge counter as a percentage of nominal capacity.

    Only meaningful near a full charge, so anything at or below 95% battery
    yields the sentinel. Digits are truncated, not rounded.
    """
    level = _to_int(battery_percent)
    if level is None or level <= HEALTH_MIN_BATTERY or charge_counter is None:
        return NOT_AVAILABLE
    try:
        counter = Decimal(charge_counter.strip())
    except InvalidOperation:
        return NOT_AVAILABLE
    health = (counter * 100 / NOMINAL_CHARGE_COUNTER).quantize(
        Decimal("0.01"), rounding=ROUND_DOWN
    )
    return f"{health}%"


def classify_audio_route(server_info: str | None) -> AudioRouteState:
    if server_info is None:
        return AudioRouteState.UNAVAILABLE
    if "hdmi" in server_info.lower():
        return AudioRouteState.TV_IS_DEFAULT
    if _WRONG_SINK.search(server_info):
        return AudioRouteState.WRONG_OUTPUT
    return AudioRouteState.OK


def classify_volume(
    volume: int | None,
    muted: bool,
    route: AudioRouteState,
    server_muted: bool | None = None,
) -> str:
    if volume is None:
        return NOT_AVAILABLE
    if route.misrouted:
        return f"{volume}%-WRONG OUTPUT"
    if muted or volume == 0 or server_muted:
        return f"{volume}%-MUTED"
    if volume < LOW_VOLUME_THRESHOLD:
        return f"{volume}%-LOW VOL."
    return f"{volume}%"


def server_reports_muted(server_info: str | None) -> bool | None:
    if server_info is None:
        return None
    for line in server_info.splitlines():
        if "muted" in line.lower() and "y" in line.lower():
            return True
    return False


def classify_game(processes: Iterable[str] | None) -> GameState:
    if processes is None:
        return GameState.LOOKUP_ERROR
    if any(_GAME_LAUNCHERS.search(command) for command in processes):
        return GameState.RUNNING
    return GameState.CLOSED


def classify_board(usb_devices: str | None) -> BoardState:
    if usb_devices is None:
        return BoardState.UNKNOWN_ERROR
    if "arduino" in usb_devices.lower():
        return BoardState.FOUND
    return BoardState.NOT_FOUND


def classify_programmer(preferences: str | None) -> ProgrammerState:
    if preferences is None:
        return ProgrammerState.LOOKUP_ERROR
    if "mkii" in preferences.lower():
        return ProgrammerState.MKII
    return ProgrammerState.WRONG


def classify_port(board_list: str | None, preferences: str | None) -> PortState:
    if board_list is None or preferences is None:
        return PortState.UNKNOWN_ERROR
    if "found" in board_list.lower():
        return PortState.BOARD_NOT_FOUND
    if "acm0" in preferences.lower():
        return PortState.CORRECT
    return PortState.WRONG


def classify_board_type(preferences: str | None) -> BoardTypeState:
    if preferences is None:
        return BoardTypeState.LOOKUP_ERROR
    if "micro" in preferences.lower():
        return BoardTypeState.MICRO
    return BoardTypeState.WRONG


def classify_remote_access(config_text: str | None, marker: str) -> RemoteAccessState:
    if config_text is None:
        return RemoteAccessState.LOOKUP_ERROR
    if marker.lower() in config_text.lower():
        return RemoteAccessState.ASSIGNED
    return RemoteAccessState.NOT_ASSIGNED


def classify_remote_id(reported_id: str | None, placeholder_id: str) -> RemoteIdState:
    if reported_id is None or not reported_id.strip():
        return RemoteIdState.UNAVAILABLE
    if reported_id.strip() == placeholder_id:
        return RemoteIdState.DUPLICATED
    return RemoteIdState.OK


def classify_monitoring_entry(value: str | None, min_length: int = 5) -> str:
    """Return the entry itself, or why it is unusable."""
    if value is None or not value.strip():
        return EntryState.NOT_FOUND.value
    if not any(char.isalnum() for char in value):
        return EntryState.STRANGE.value
    if len(value) < min_length:
        return EntryState.SHORT.value
    return value
