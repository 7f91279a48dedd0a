from __future__ import annotations

import argparse
import json
import logging
import sys

from coaster_stats.config import load_config
from coaster_stats.delivery import RemoteDelivery
from coaster_stats.logging_utils import configure_logging, resolve_log_level
from coaster_stats.orchestrator import Orchestrator, PassInProgressError
from coaster_stats.signals import ShellSignalSource


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Collect headset and host stats once, log them and upload them"
    )
    parser.add_argument(
        "--config",
        default="/opt/RilixScripts/coaster_stats.cfg",
        help="Path to CFG configuration file",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Write the local log but skip remote delivery",
    )
    parser.add_argument(
        "--dump-json",
        help="Write the report of this pass as JSON to a file",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level, config.agent.debug_log)
    logger = logging.getLogger("coaster_stats")

    delivery = (
        None
        if args.dry_run
        else RemoteDelivery(config.remote, spool_dir=config.agent.spool_dir)
    )
    if delivery is None:
        logger.info("Dry run enabled; skipping remote delivery.")
    orchestrator = Orchestrator(config, ShellSignalSource(config.collector), delivery)

    try:
        report = orchestrator.run_locked()
    except PassInProgressError as exc:
        logger.warning("%s; skipping this pass.", exc)
        return 1

    if args.dump_json:
        summary = {
            "placeholder": report.placeholder,
            "serials": report.serials,
            "rows_written": report.rows_written,
            "connectivity_ok": report.connectivity_ok,
            "deliveries": [
                {
                    "status": result.status.value,
                    "http_status": result.http_status,
                    "elapsed_s": round(result.elapsed_s, 3),
                }
                for result in report.deliveries
            ],
        }
        with open(args.dump_json, "w", encoding="utf-8") as handle:
            json.dump(summary, handle, indent=2)
    return 0


if __name__ == "__main__":
    sys.exit(main())
