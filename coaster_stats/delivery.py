"""Deliver records to the remote collector over HTTPS."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
import json
import logging
import os
from pathlib import Path
import tempfile
import time
from typing import Iterator

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from coaster_stats.config import RemoteConfig
from coaster_stats.logging_utils import TRACE_LEVEL
from coaster_stats.record import Record
from coaster_stats.schema import validate_payload

SUCCESS_STATUSES = frozenset({200, 201})
RETRY_STATUSES = (408, 429, 500, 502, 503, 504)
CONNECTIVITY_RETRIES = 1
INVALID_PAYLOADS = frozenset({"", "{}", "null"})
PREVIEW_LENGTH = 200


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    INVALID = "INVALID"
    SENDING = "SENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass(frozen=True)
class DeliveryResult:
    status: DeliveryStatus
    http_status: int | None = None
    elapsed_s: float = 0.0
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.SUCCESS


def _preview(text: str | None) -> str:
    if not text:
        return ""
    return text if len(text) <= PREVIEW_LENGTH else f"{text[:PREVIEW_LENGTH]}..."


class RemoteDelivery:
    def __init__(
        self,
        config: RemoteConfig,
        spool_dir: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config
        self.spool_dir = spool_dir
        self.logger = logging.getLogger(self.__class__.__name__)
        if session is None:
            self.session = self._build_session(config.retries, RETRY_STATUSES)
            self.probe_session = self._build_session(CONNECTIVITY_RETRIES, ())
        else:
            self.session = self.probe_session = session
        if not config.token:
            self.logger.warning("No bearer token configured for %s", config.upload_url)

    def _build_session(
        self, retries: int, status_forcelist: tuple[int, ...]
    ) -> requests.Session:
        session = requests.Session()
        retry = Retry(
            total=retries,
            backoff_factor=self.config.retry_backoff_s,
            status_forcelist=status_forcelist,
            allowed_methods=frozenset({"GET", "POST"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.token or ''}",
            "User-Agent": self.config.user_agent,
            "Accept": "application/json",
        }

    @staticmethod
    def serialize(record: Record) -> str:
        return json.dumps(record.as_payload(), ensure_ascii=False)

    def validate(self, payload: str | None) -> list[str]:
        if payload is None or payload.strip() in INVALID_PAYLOADS:
            return ["payload is empty"]
        try:
            document = json.loads(payload)
        except json.JSONDecodeError as exc:
            return [f"payload is not valid JSON: {exc}"]
        return validate_payload(document)

    def deliver(self, record: Record) -> DeliveryResult:
        return self.send(self.serialize(record))

    def send(self, payload: str | None) -> DeliveryResult:
        url = self.config.upload_url
        self.logger.debug(
            "Delivery %s: attempting to send data to %s",
            DeliveryStatus.PENDING.value,
            url,
        )
        self.logger.debug("Data preview: %s", _preview(payload))

        errors = self.validate(payload)
        if errors:
            self.logger.error(
                "Invalid payload, skipping send: %s", "; ".join(errors[:5])
            )
            return DeliveryResult(DeliveryStatus.INVALID, detail="; ".join(errors))

        try:
            with self._spooled(payload) as spool:
                body = spool.read_bytes()
                if not body.strip():
                    self.logger.error(
                        "Spooled payload %s is empty, skipping send", spool
                    )
                    return DeliveryResult(DeliveryStatus.INVALID, detail="empty spool")
                self.logger.log(TRACE_LEVEL, "Sending %s bytes from %s", len(body), spool)
                return self._post(url, body)
        except (OSError, UnicodeEncodeError) as exc:
            self.logger.error("Delivery FAILED, could not spool payload: %s", exc)
            return DeliveryResult(DeliveryStatus.FAILED, detail=str(exc))

    def _post(self, url: str, body: bytes) -> DeliveryResult:
        self.logger.debug("Delivery %s: POST %s", DeliveryStatus.SENDING.value, url)
        started = time.monotonic()
        try:
            response = self.session.post(
                url,
                data=body,
                headers=self.headers,
                timeout=self.config.timeout_s,
            )
        except requests.RequestException as exc:
            elapsed = time.monotonic() - started
            self.logger.error(
                "Delivery FAILED after %.2fs, transport error: %s",
                elapsed,
                exc,
            )
            return DeliveryResult(
                DeliveryStatus.FAILED, elapsed_s=elapsed, detail=str(exc)
            )
        elapsed = time.monotonic() - started

        status_code = getattr(response, "status_code", None)
        body_preview = _preview(getattr(response, "text", ""))
        if status_code is None:
            self.logger.error(
                "Delivery FAILED after %.2fs, no HTTP status received", elapsed
            )
            return DeliveryResult(
                DeliveryStatus.FAILED, elapsed_s=elapsed, detail="no HTTP status"
            )
        if status_code not in SUCCESS_STATUSES:
            self.logger.error(
                "Delivery FAILED (HTTP %s, %.2fs), server rejected request: %s",
                status_code,
                elapsed,
                body_preview,
            )
            return DeliveryResult(
                DeliveryStatus.FAILED,
                http_status=status_code,
                elapsed_s=elapsed,
                detail=body_preview,
            )
        self.logger.info(
            "Delivery SUCCESS (HTTP %s, %.2fs)", status_code, elapsed
        )
        self.logger.debug("Response body: %s", body_preview)
        return DeliveryResult(
            DeliveryStatus.SUCCESS, http_status=status_code, elapsed_s=elapsed
        )

    def check_connectivity(self) -> bool:
        self.logger.debug("Testing connectivity to %s", self.config.url)
        try:
            response = self.probe_session.get(
                self.config.url,
                headers={"User-Agent": self.config.user_agent},
                timeout=self.config.connectivity_timeout_s,
            )
        except requests.RequestException as exc:
            self.logger.warning("Connectivity check FAILED: %s", exc)
            return False
        status_code = getattr(response, "status_code", None)
        if status_code is not None and 200 <= status_code < 600:
            self.logger.info("Connectivity OK (HTTP %s)", status_code)
            return True
        self.logger.warning("Connectivity check FAILED (HTTP %s)", status_code)
        return False

    @contextmanager
    def _spooled(self, payload: str) -> Iterator[Path]:
        """Write the payload to a per-attempt scratch file, removed on exit."""
        prefix = f"upload_{int(time.time())}_{os.getpid()}_"
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            prefix=prefix,
            suffix=".json",
            dir=self.spool_dir,
            delete=False,
        )
        path = Path(handle.name)
        try:
            with handle:
                handle.write(payload)
            yield path
        finally:
            path.unlink(missing_ok=True)
