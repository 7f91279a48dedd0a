from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import fcntl
import logging
import os
from pathlib import Path
from types import TracebackType

from coaster_stats import classifier
from coaster_stats.config import AppConfig
from coaster_stats.context import DeviceObservation, HostObservation, PassContext
from coaster_stats.dedup import DedupCounter
from coaster_stats.delivery import DeliveryResult, RemoteDelivery
from coaster_stats.record import Record, RecordBuilder
from coaster_stats.sink import LocalSink
from coaster_stats.signals import (
    LICENSE_FIELDS,
    THERMAL_ZONES,
    DeviceListing,
    SignalSource,
    parse_battery_report,
    parse_default_sink,
    parse_device_listing,
    parse_monitoring_config,
    parse_process_table,
    parse_sink,
    parse_version,
    parse_wakefulness,
)


class PassInProgressError(RuntimeError):
    """Another pass holds the lock file."""


class PassLock:
    """Exclusive, non-blocking ``flock`` on a lock file for the length of a pass."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._fd: int | None = None

    def __enter__(self) -> "PassLock":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            os.close(fd)
            raise PassInProgressError(f"Another pass holds {self.path}") from exc
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._fd is not None:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
            os.close(self._fd)
            self._fd = None


@dataclass
class PassReport:
    connectivity_ok: bool | None = None
    placeholder: bool = False
    serials: list[str] = field(default_factory=list)
    rows_written: int = 0
    deliveries: list[DeliveryResult] = field(default_factory=list)

    @property
    def deliveries_failed(self) -> int:
        return sum(1 for result in self.deliveries if not result.ok)


class Orchestrator:
    def __init__(
        self,
        config: AppConfig,
        source: SignalSource,
        delivery: RemoteDelivery | None,
        sink: LocalSink | None = None,
        dedup: DedupCounter | None = None,
        builder: RecordBuilder | None = None,
    ) -> None:
        self.config = config
        self.source = source
        self.delivery = delivery
        self.sink = sink or LocalSink(config.agent.log_base_dir)
        self.dedup = dedup or DedupCounter(config.agent.rows_per_bucket)
        self.builder = builder or RecordBuilder()
        self.logger = logging.getLogger(self.__class__.__name__)

    def run_pass(self, moment: datetime | None = None) -> PassReport:
        context = PassContext.start(moment)
        report = PassReport()
        self.logger.info(
            "Starting stats collection for %s %s",
            context.bucket.date,
            context.bucket.time,
        )

        if self.delivery is not None:
            report.connectivity_ok = self.delivery.check_connectivity()
            if not report.connectivity_ok:
                self.logger.warning("Connectivity test failed, but continuing.")

        listing = parse_device_listing(self.source.device_listing())
        self.logger.info(
            "Connected devices: %s, unauthorized devices: %s",
            len(listing.healthy),
            len(listing.unauthorized),
        )
        context.host = self.observe_host()

        if not listing.healthy or listing.unauthorized:
            self.logger.info("No valid devices found, creating placeholder entry.")
            report.placeholder = True
            state = classifier.classify_connectivity(listing, None)
            device = DeviceObservation.placeholder(state)
            self._emit(context, device, [self.builder.build(context, device)], report)
        else:
            for serial in listing.healthy:
                self.logger.info("Processing device: %s", serial)
                report.serials.append(serial)
                device = self.observe_device(listing, serial)
                records = self.build_device_records(context, device)
                self._emit(context, device, records, report)

        self.logger.info(
            "Stats collection completed: %s row(s) written, %s/%s deliveries failed.",
            report.rows_written,
            report.deliveries_failed,
            len(report.deliveries),
        )
        return report

    def run_locked(self, moment: datetime | None = None) -> PassReport:
        with PassLock(self.config.agent.lock_file):
            return self.run_pass(moment)

    def observe_host(self) -> HostObservation:
        source = self.source
        settings = self.config.collector

        preferences = source.ide_preferences()
        mixer_info = source.mixer_info()
        route = classifier.classify_audio_route(mixer_info)
        sink = parse_sink(source.mixer_sinks(), parse_default_sink(mixer_info))
        # Historical rows never reflect the server-wide mute flag.
        server_muted = (
            classifier.server_reports_muted(mixer_info)
            if settings.honor_server_mute
            else None
        )
        monitoring = parse_monitoring_config(source.monitoring_config())
        license_raw = source.license_info() or {}

        return HostObservation(
            game_state=classifier.classify_game(source.host_processes()).value,
            board_status=classifier.classify_board(source.usb_devices()).value,
            programmer=classifier.classify_programmer(preferences).value,
            port=classifier.classify_port(source.board_list(), preferences).value,
            board_type=classifier.classify_board_type(preferences).value,
            default_output=route.value,
            volume=classifier.classify_volume(
                sink.volume, sink.muted, route, server_muted
            ),
            remote_access_assigned=classifier.classify_remote_access(
                source.remote_access_config(), settings.account_marker
            ).value,
            remote_id_state=classifier.classify_remote_id(
                source.remote_access_id(), settings.placeholder_remote_id
            ).value,
            monitoring_teamviewer_id=classifier.classify_monitoring_entry(
                monitoring["teamviewer_id"]
            ),
            monitoring_key=classifier.classify_monitoring_entry(monitoring["key"]),
            monitoring_country=classifier.classify_monitoring_entry(
                monitoring["country"], min_length=2
            ),
            pc_cpu_temp=source.host_cpu_temperature(),
            pc_cpu_frequency=source.host_cpu_frequency(),
            pc_cpu_load=source.host_cpu_load(),
            license={
                name: value
                for name, value in license_raw.items()
                if name in LICENSE_FIELDS and isinstance(value, str)
            },
        )

    def observe_device(self, listing: DeviceListing, serial: str) -> DeviceObservation:
        source = self.source
        state = classifier.classify_connectivity(listing, source.device_state(serial))
        battery = parse_battery_report(source.battery_report(serial))
        return DeviceObservation(
            serial=serial,
            device_count=str(len(listing.healthy)),
            device_state=state.value,
            version=parse_version(source.headset_version(serial)),
            battery_percent=battery.level,
            charging=classifier.classify_charging(battery.max_charging_current).value,
            screen_state=parse_wakefulness(source.power_report(serial)),
            max_charging_current=battery.max_charging_current,
            max_charging_voltage=battery.max_charging_voltage,
            charge_counter=battery.charge_counter,
            battery_health=classifier.battery_health(
                battery.level, battery.charge_counter
            ),
            thermal={
                name: source.thermal_zone(serial, zone)
                for name, zone in THERMAL_ZONES.items()
            },
        )

    def build_device_records(
        self, context: PassContext, device: DeviceObservation
    ) -> list[Record]:
        processes = parse_process_table(
            self.source.process_table(device.serial),
            limit=self.config.agent.process_rows,
        )
        if not processes:
            self.logger.info(
                "No process data found for %s, sending basic device data.", device.serial
            )
            return [self.builder.build(context, device)]
        return [self.builder.build(context, device, process) for process in processes]

    def _emit(
        self,
        context: PassContext,
        device: DeviceObservation,
        records: list[Record],
        report: PassReport,
    ) -> None:
        bucket = context.bucket
        try:
            log_file = self.sink.ensure_header(bucket)
            remaining = self.dedup.remaining(
                log_file, device.serial, bucket.date, bucket.time
            )
            written = self.sink.append(bucket, records[:remaining])
        except OSError as exc:
            self.logger.error(
                "Could not write local log for %s, continuing with delivery: %s",
                device.serial,
                exc,
            )
            written = 0
        report.rows_written += written

        if self.delivery is None:
            self.logger.debug("Dry run; skipping delivery of %s record(s).", len(records))
            return
        for record in records:
            report.deliveries.append(self.delivery.deliver(record))
        self.logger.info(
            "Captured %s CSV entries and sent %s entries for %s",
            written,
            len(records),
            device.serial,
        )
