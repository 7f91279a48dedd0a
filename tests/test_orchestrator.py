"""End-to-end pass scenarios against a fixture-backed signal source."""
from __future__ import annotations

import csv
from dataclasses import replace
from datetime import datetime
from unittest.mock import Mock

import pytest
import requests

from coaster_stats.delivery import DeliveryStatus, RemoteDelivery
from coaster_stats.orchestrator import Orchestrator, PassInProgressError, PassLock
from coaster_stats.record import HEADER
from tests.conftest import FakeSignalSource

MOMENT = datetime(2024, 5, 17, 14, 30)
TWO_DEVICES = "List of devices attached\nAAA111\tdevice\nBBB222\tdevice\n\n"


@pytest.fixture
def session():
    session = Mock(spec=requests.Session)
    session.get.return_value = Mock(status_code=200)
    session.post.return_value = Mock(status_code=200, text='{"status": "ok"}')
    return session


@pytest.fixture
def make_orchestrator(app_config, session):
    def _make(source, dry_run=False):
        delivery = None
        if not dry_run:
            delivery = RemoteDelivery(
                app_config.remote, spool_dir=app_config.agent.spool_dir, session=session
            )
        return Orchestrator(app_config, source, delivery)

    return _make


def log_rows(app_config):
    from pathlib import Path

    path = Path(app_config.agent.log_base_dir) / "2024-05" / "2024-05-17.csv"
    with path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.reader(handle))
    assert rows[0] == list(HEADER)
    return [dict(zip(HEADER, row)) for row in rows[1:]]


@pytest.mark.scenario
class TestScenarios:
    def test_no_devices_writes_placeholder(self, make_orchestrator, fake_source, session, app_config):
        report = make_orchestrator(fake_source).run_pass(MOMENT)

        assert report.placeholder
        assert report.connectivity_ok is True
        assert report.rows_written == 1
        assert len(report.deliveries) == 1
        assert session.post.call_count == 1

        rows = log_rows(app_config)
        assert len(rows) == 1
        row = rows[0]
        assert row["Serial"] == "N/A"
        assert row["NºDevices"] == "0"
        assert row["Device State"] == "NOT FOUND"
        assert row["PID quest"] == "N/A"
        assert row["Date"] == "2024-05-17"
        assert row["Time"] == "14-30"
        assert all(value for value in row.values())

    def test_healthy_device_full_battery(self, make_orchestrator, one_device_source, app_config):
        report = make_orchestrator(one_device_source).run_pass(MOMENT)

        assert not report.placeholder
        assert report.serials == ["1WMHH000000001"]
        assert report.rows_written == 3
        assert [result.status for result in report.deliveries] == [DeliveryStatus.SUCCESS] * 3

        rows = log_rows(app_config)
        assert [row["PID quest"] for row in rows] == ["3456", "1234", "2345"]
        first = rows[0]
        assert first["Serial"] == "1WMHH000000001"
        assert first["NºDevices"] == "1"
        assert first["Device State"] == "device"
        assert first["Battery Health %"] == "97.00%"
        assert first["Fast Charging?"] == "fast"
        assert first["Screen State"] == "Awake"
        assert first["Game closed?"] == "game running"
        assert first["Volume"] == "90%"
        assert first["quest CPU Temp 1"] == "45.6"
        assert first["quest IO Chip Temp"] == "N/A"
        assert first["PC CPU Frequency"] == "2400.0MHz"
        assert first["License Key"] == "KEY-1"

    def test_server_errors_do_not_stop_the_pass(self, make_orchestrator, session, app_config):
        source = FakeSignalSource(
            listing=TWO_DEVICES, states={"AAA111": "device", "BBB222": "device"}
        )
        session.post.return_value = Mock(status_code=500, text="Internal Server Error")

        report = make_orchestrator(source).run_pass(MOMENT)

        assert report.serials == ["AAA111", "BBB222"]
        assert report.rows_written == 6
        assert len(report.deliveries) == 6
        assert report.deliveries_failed == 6
        assert "process_table:AAA111" in source.calls
        assert "process_table:BBB222" in source.calls
        rows = log_rows(app_config)
        assert [row["Serial"] for row in rows] == ["AAA111"] * 3 + ["BBB222"] * 3
        assert all(row["NºDevices"] == "2" for row in rows)

    def test_full_bucket_still_delivers(self, make_orchestrator, one_device_source, session, app_config):
        orchestrator = make_orchestrator(one_device_source)
        orchestrator.run_pass(MOMENT)
        session.post.reset_mock()

        report = orchestrator.run_pass(MOMENT)

        assert report.rows_written == 0
        assert len(report.deliveries) == 3
        assert session.post.call_count == 3
        assert len(log_rows(app_config)) == 3

    def test_unreachable_collector_still_runs(self, make_orchestrator, one_device_source, session):
        session.get.side_effect = requests.ConnectionError("no route to host")
        report = make_orchestrator(one_device_source).run_pass(MOMENT)
        assert report.connectivity_ok is False
        assert report.rows_written == 3

    def test_unusable_spool_dir_does_not_stop_the_pass(self, app_config, session, tmp_path):
        source = FakeSignalSource(
            listing=TWO_DEVICES, states={"AAA111": "device", "BBB222": "device"}
        )
        spool_dir = tmp_path / "missing"
        delivery = RemoteDelivery(app_config.remote, spool_dir=str(spool_dir), session=session)

        report = Orchestrator(app_config, source, delivery).run_pass(MOMENT)

        assert report.serials == ["AAA111", "BBB222"]
        assert "process_table:BBB222" in source.calls
        assert [result.status for result in report.deliveries] == [DeliveryStatus.FAILED] * 6
        assert report.rows_written == 6
        session.post.assert_not_called()
        assert not spool_dir.exists()
        assert list(tmp_path.glob("upload_*.json")) == []

    def test_unwritable_log_still_delivers(self, app_config, session, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        agent = replace(app_config.agent, log_base_dir=str(blocker / "logs"))
        config = replace(app_config, agent=agent)
        source = FakeSignalSource(
            listing=TWO_DEVICES, states={"AAA111": "device", "BBB222": "device"}
        )
        delivery = RemoteDelivery(config.remote, spool_dir=config.agent.spool_dir, session=session)

        report = Orchestrator(config, source, delivery).run_pass(MOMENT)

        assert report.rows_written == 0
        assert report.serials == ["AAA111", "BBB222"]
        assert [result.status for result in report.deliveries] == [DeliveryStatus.SUCCESS] * 6
        assert session.post.call_count == 6


class TestDeviceHandling:
    def test_unauthorized_device_yields_placeholder(self, make_orchestrator, app_config):
        source = FakeSignalSource(
            listing="List of devices attached\nAAA111\tdevice\nBBB222\tunauthorized\n",
            states={"AAA111": "device"},
        )
        report = make_orchestrator(source).run_pass(MOMENT)

        assert report.placeholder
        assert report.serials == []
        assert not any(call.startswith("process_table") for call in source.calls)
        row = log_rows(app_config)[0]
        assert row["Serial"] == "N/A"
        assert row["Device State"] == "UNAUTHORIZED"

    def test_missing_adb_yields_critical_placeholder(self, make_orchestrator, app_config):
        report = make_orchestrator(FakeSignalSource(listing=None)).run_pass(MOMENT)
        assert report.placeholder
        assert log_rows(app_config)[0]["Device State"] == "CRITICAL ERROR"

    def test_empty_process_table_yields_one_record(self, make_orchestrator, one_device_source, session, app_config):
        one_device_source.top = ""
        report = make_orchestrator(one_device_source).run_pass(MOMENT)

        assert report.rows_written == 1
        assert session.post.call_count == 1
        row = log_rows(app_config)[0]
        assert row["Serial"] == "1WMHH000000001"
        assert (row["PID quest"], row["%CPU quest"], row["%MEM quest"], row["ARGS quest"]) == (
            "N/A", "N/A", "N/A", "N/A",
        )

    def test_dry_run_skips_delivery(self, make_orchestrator, one_device_source, session):
        report = make_orchestrator(one_device_source, dry_run=True).run_pass(MOMENT)

        assert report.connectivity_ok is None
        assert report.deliveries == []
        assert report.rows_written == 3
        session.get.assert_not_called()
        session.post.assert_not_called()

    def test_host_is_observed_once_per_pass(self, make_orchestrator, app_config):
        source = FakeSignalSource(
            listing=TWO_DEVICES, states={"AAA111": "device", "BBB222": "device"}
        )
        source.license_info = Mock(return_value=source.license)
        make_orchestrator(source).run_pass(MOMENT)
        assert source.license_info.call_count == 1

    def test_license_values_are_filtered(self, make_orchestrator, one_device_source):
        one_device_source.license = {"key": "K", "label": 7, "other": "x"}
        host = make_orchestrator(one_device_source).observe_host()
        assert host.license == {"key": "K"}

    def test_server_mute_is_ignored_by_default(self, make_orchestrator, one_device_source):
        one_device_source.info = one_device_source.info + "Muted: yes\n"
        host = make_orchestrator(one_device_source).observe_host()
        assert host.volume == "90%"


@pytest.mark.integration
class TestPassLock:
    def test_second_pass_is_refused(self, make_orchestrator, fake_source, app_config):
        with PassLock(app_config.agent.lock_file):
            with pytest.raises(PassInProgressError):
                make_orchestrator(fake_source).run_locked(MOMENT)

    def test_lock_is_released(self, make_orchestrator, fake_source, app_config):
        orchestrator = make_orchestrator(fake_source)
        orchestrator.run_locked(MOMENT)
        report = orchestrator.run_locked(MOMENT)
        assert report.placeholder
