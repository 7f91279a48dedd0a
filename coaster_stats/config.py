from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import configparser


@dataclass(frozen=True)
class AgentConfig:
    log_base_dir: str
    lock_file: str
    spool_dir: str | None
    rows_per_bucket: int
    process_rows: int
    debug_log: str | None


@dataclass(frozen=True)
class CollectorConfig:
    adb_path: str
    pactl_path: str
    arduino_cli_path: str
    lsusb_path: str
    anydesk_path: str
    run_as_user: str | None
    headset_package: str
    arduino_preferences: str
    teamviewer_config: str
    monitoring_config: str
    cpu_freq_path: str
    cpu_sample_s: float
    command_timeout_s: float | None
    license_url: str
    license_timeout_s: float
    account_marker: str
    placeholder_remote_id: str
    honor_server_mute: bool


@dataclass(frozen=True)
class RemoteConfig:
    url: str
    upload_path: str
    token: str | None
    user_agent: str
    timeout_s: float
    retries: int
    retry_backoff_s: float
    connectivity_timeout_s: float

    @property
    def upload_url(self) -> str:
        return f"{self.url.rstrip('/')}/{self.upload_path.lstrip('/')}"


@dataclass(frozen=True)
class AppConfig:
    agent: AgentConfig
    collector: CollectorConfig
    remote: RemoteConfig


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _get_optional_float(value: str | None) -> float | None:
    value = _get_optional(value)
    if value is None:
        return None
    number = float(value)
    return number if number > 0 else None


def load_config(path: str | Path) -> AppConfig:
    parser = configparser.ConfigParser(interpolation=None)
    read_files = parser.read(path)
    if not read_files:
        raise FileNotFoundError(f"Config file not found: {path}")
    return parse_config(parser)


def parse_config(parser: configparser.ConfigParser) -> AppConfig:
    # Every option has a fallback so a config file may omit whole sections.
    agent = AgentConfig(
        log_base_dir=parser.get("agent", "log_base_dir", fallback="/home/rilix/Rilix_coaster_stats_br"),
        lock_file=parser.get("agent", "lock_file", fallback="/tmp/coaster_stats.lock"),
        spool_dir=_get_optional(parser.get("agent", "spool_dir", fallback=None)),
        rows_per_bucket=parser.getint("agent", "rows_per_bucket", fallback=3),
        process_rows=parser.getint("agent", "process_rows", fallback=3),
        debug_log=_get_optional(parser.get("agent", "debug_log", fallback=None)),
    )

    collector = CollectorConfig(
        adb_path=parser.get("collector", "adb_path", fallback="adb"),
        pactl_path=parser.get("collector", "pactl_path", fallback="pactl"),
        arduino_cli_path=parser.get(
            "collector", "arduino_cli_path", fallback="/opt/arduino-cli/arduino-cli"
        ),
        lsusb_path=parser.get("collector", "lsusb_path", fallback="lsusb"),
        anydesk_path=parser.get("collector", "anydesk_path", fallback="anydesk"),
        run_as_user=_get_optional(parser.get("collector", "run_as_user", fallback=None)),
        headset_package=parser.get(
            "collector", "headset_package", fallback="com.oculus.systemdriver"
        ),
        arduino_preferences=parser.get(
            "collector",
            "arduino_preferences",
            fallback="/home/rilix/.arduino15/preferences.txt",
        ),
        teamviewer_config=parser.get(
            "collector", "teamviewer_config", fallback="/opt/teamviewer/config/global.conf"
        ),
        monitoring_config=parser.get(
            "collector",
            "monitoring_config",
            fallback="/opt/RilixScripts/database_monitoring.sh",
        ),
        cpu_freq_path=parser.get(
            "collector",
            "cpu_freq_path",
            fallback="/sys/devices/system/cpu/cpu0/cpufreq/scaling_cur_freq",
        ),
        cpu_sample_s=parser.getfloat("collector", "cpu_sample_s", fallback=0.5),
        command_timeout_s=_get_optional_float(
            parser.get("collector", "command_timeout_s", fallback=None)
        ),
        license_url=parser.get(
            "collector", "license_url", fallback="http://localhost/api/license"
        ),
        license_timeout_s=parser.getfloat("collector", "license_timeout_s", fallback=5.0),
        account_marker=parser.get("collector", "account_marker", fallback="rilix"),
        placeholder_remote_id=parser.get(
            "collector", "placeholder_remote_id", fallback="715555530"
        ),
        honor_server_mute=parser.getboolean(
            "collector", "honor_server_mute", fallback=False
        ),
    )

    remote = RemoteConfig(
        url=parser.get(
            "remote",
            "url",
            fallback="https://rilix-stats-app-br-e7381e9071b5.herokuapp.com/",
        ),
        upload_path=parser.get("remote", "upload_path", fallback="upload"),
        token=_get_optional(parser.get("remote", "token", fallback=None)),
        user_agent=parser.get("remote", "user_agent", fallback="RilixStats/1.0"),
        timeout_s=parser.getfloat("remote", "timeout_s", fallback=30.0),
        retries=parser.getint("remote", "retries", fallback=2),
        retry_backoff_s=parser.getfloat("remote", "retry_backoff_s", fallback=1.0),
        connectivity_timeout_s=parser.getfloat(
            "remote", "connectivity_timeout_s", fallback=10.0
        ),
    )

    return AppConfig(agent=agent, collector=collector, remote=remote)


def default_config() -> AppConfig:
    return parse_config(configparser.ConfigParser(interpolation=None))
