from __future__ import annotations

from enum import Enum

NOT_AVAILABLE = "N/A"


class StatusEnum(str, Enum):
    """Status value whose ``value`` is the exact text written to the log."""

    def __str__(self) -> str:
        return self.value


class ConnectivityState(StatusEnum):
    CRITICAL_ERROR = "CRITICAL ERROR"
    STRANGE_STATE = "STRANGE STATE"
    OFFLINE_ERROR = "OFFLINE ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    DEVICE = "device"
    NOT_FOUND = "NOT FOUND"
    UNKNOWN_ERROR = "UNKNOWN ERROR"


class ChargingState(StatusEnum):
    FAST = "fast"
    SLOW = "SLOW CHARGING"
    UNAVAILABLE = NOT_AVAILABLE


class AudioRouteState(StatusEnum):
    TV_IS_DEFAULT = "TV IS DEFAULT"
    WRONG_OUTPUT = "WRONG OUTPUT"
    OK = "output ok"
    UNAVAILABLE = NOT_AVAILABLE

    @property
    def misrouted(self) -> bool:
        return self in (AudioRouteState.TV_IS_DEFAULT, AudioRouteState.WRONG_OUTPUT)


class GameState(StatusEnum):
    RUNNING = "game running"
    CLOSED = "GAME CLOSED"
    LOOKUP_ERROR = "GREP ERROR"


class BoardState(StatusEnum):
    FOUND = "board found"
    NOT_FOUND = "BOARD NOT FOUND"
    UNKNOWN_ERROR = "UNKNOWN ERROR"


class ProgrammerState(StatusEnum):
    MKII = "mkii is programmer"
    WRONG = "WRONG PROGRAMMER"
    LOOKUP_ERROR = "GREP ERROR"


class PortState(StatusEnum):
    CORRECT = "correct port acm0"
    WRONG = "WRONG BOARD PORT"
    BOARD_NOT_FOUND = "BOARD NOT FOUND"
    UNKNOWN_ERROR = "UNKNOWN ERROR"


class BoardTypeState(StatusEnum):
    MICRO = "type micro"
    WRONG = "WRONG BOARD TYPE"
    LOOKUP_ERROR = "GREP ERROR"


class RemoteAccessState(StatusEnum):
    ASSIGNED = "teamviewer ok"
    NOT_ASSIGNED = "ATTENTION-TEAMVIEWER NOT ASSIGNED"
    LOOKUP_ERROR = "GREP ERROR"


class RemoteIdState(StatusEnum):
    DUPLICATED = "DUPLICATED-RILIX@AD"
    OK = "anydesk id ok"
    UNAVAILABLE = NOT_AVAILABLE


class EntryState(StatusEnum):
    NOT_FOUND = "ENTRY NOT FOUND"
    STRANGE = "STRANGE ENTRY"
    SHORT = "SHORT ENTRY"
