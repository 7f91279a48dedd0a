from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Iterable

from coaster_stats.context import TimeBucket
from coaster_stats.record import HEADER, Record


class LocalSink:
    """Append-only CSV log: ``<base>/<YYYY-MM>/<YYYY-MM-DD>.csv``."""

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)
        self.logger = logging.getLogger(self.__class__.__name__)

    def path_for(self, bucket: TimeBucket) -> Path:
        return self.base_dir / bucket.month / f"{bucket.date}.csv"

    def ensure_header(self, bucket: TimeBucket) -> Path:
        path = self.path_for(bucket)
        path.parent.mkdir(parents=True, exist_ok=True)
        # "x" fails if another writer created the file first, so the header
        # is written at most once.
        try:
            with path.open("x", encoding="utf-8", newline="") as handle:
                csv.writer(
                    handle, quoting=csv.QUOTE_ALL, lineterminator="\n"
                ).writerow(HEADER)
            self.logger.debug("Created log file %s", path)
        except FileExistsError:
            pass
        return path

    def append(self, bucket: TimeBucket, records: Iterable[Record]) -> int:
        path = self.ensure_header(bucket)
        written = 0
        with path.open("a", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
            for record in records:
                writer.writerow(record.as_row())
                written += 1
        if written:
            self.logger.info("Wrote %s row(s) to %s", written, path)
        return written
