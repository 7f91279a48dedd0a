from __future__ import annotations

import csv
import logging
from pathlib import Path

from coaster_stats.record import FIELD_NAMES, SERIAL_COLUMN

DEFAULT_ROWS_PER_BUCKET = 3

_DATE_COLUMN = FIELD_NAMES.index("date")
_TIME_COLUMN = FIELD_NAMES.index("time")


class DedupCounter:
    """Cap the local rows per (serial, date, time bucket).

    Only the local log is capped; callers still deliver every record remotely.
    """

    def __init__(self, limit: int = DEFAULT_ROWS_PER_BUCKET) -> None:
        self.limit = limit
        self.logger = logging.getLogger(self.__class__.__name__)

    def already_written(self, log_file: Path, serial: str, date: str, time: str) -> int:
        try:
            with log_file.open("r", encoding="utf-8", newline="") as handle:
                count = 0
                for row in csv.reader(handle):
                    if len(row) <= SERIAL_COLUMN:
                        continue
                    if (
                        row[_DATE_COLUMN] == date
                        and row[_TIME_COLUMN] == time
                        and row[SERIAL_COLUMN] == serial
                    ):
                        count += 1
                return count
        except FileNotFoundError:
            return 0
        except (OSError, csv.Error, UnicodeDecodeError):
            # An unreadable log counts as a full bucket.
            self.logger.warning("Could not scan %s; skipping local write.", log_file)
            return self.limit

    def remaining(self, log_file: Path, serial: str, date: str, time: str) -> int:
        remaining = self.limit - self.already_written(log_file, serial, date, time)
        if remaining <= 0:
            self.logger.info(
                "Lines already written for serial (%s) at %s %s; skipping CSV write.",
                serial,
                date,
                time,
            )
            return 0
        return remaining
