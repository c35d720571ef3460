"""Log Analytics HTTP Data Collector client."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import requests

from scripts.directory_ingestion.config import LogAnalyticsConfig
from scripts.directory_ingestion.errors import IngestionTransportError
from scripts.directory_ingestion.models import UserRecord
from scripts.directory_ingestion.signature import build_signature, rfc1123_date

logger = logging.getLogger("ingestion.log_analytics")

API_VERSION = "2016-04-01"
RESOURCE = "/api/logs"
CONTENT_TYPE = "application/json"
RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class SubmissionOutcome:
    success: bool
    rows_written: int = 0
    batches: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None
    body: Optional[str] = None  # raw response text of the failing POST

    def raise_for_status(self) -> None:
        if not self.success:
            raise IngestionTransportError(
                f"Log Analytics submission failed: {self.error}",
                status_code=self.status_code,
                body=self.body,
            )


@dataclass(frozen=True)
class _PostResult:
    status_code: Optional[int]
    error: Optional[str] = None
    body: Optional[str] = None
    retryable: bool = False


class LogAnalyticsClient:
    """Signs and POSTs batches of user records to one workspace."""

    def __init__(
        self,
        config: LogAnalyticsConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        config.validate()
        self._config = config
        self._session = session or requests.Session()
        self._url = (
            f"https://{config.workspace_id}.ods.opinsights.azure.com"
            f"{RESOURCE}?api-version={API_VERSION}"
        )

    def submit(
        self,
        records: Sequence[UserRecord],
        table_name: Optional[str] = None,
    ) -> SubmissionOutcome:
        """Submit records; an empty sequence is a no-op success.

        With ``batch_size`` 0 the whole sequence goes out in one POST.
        Otherwise chunks are sent in order and the run stops at the first
        failing chunk, reporting the rows already accepted.
        """
        if not records:
            logger.info("No records to submit, skipping Log Analytics call")
            return SubmissionOutcome(success=True)

        table = table_name or self._config.table_name
        size = self._config.batch_size or len(records)
        written = 0
        batches = 0
        for start in range(0, len(records), size):
            chunk = records[start : start + size]
            payload = [r.to_log_record() for r in chunk]
            result = self._post_with_retry(payload, table)
            if result.error is not None:
                logger.error(
                    "Log Analytics rejected batch %d: %s",
                    batches + 1,
                    result.error,
                    extra={"table": table, "status_code": result.status_code,
                           "records": written},
                )
                return SubmissionOutcome(
                    success=False,
                    rows_written=written,
                    batches=batches,
                    status_code=result.status_code,
                    error=result.error,
                    body=result.body,
                )
            written += len(chunk)
            batches += 1

        logger.info(
            "Submitted %d records to %s_CL", written, table,
            extra={"table": table, "records": written},
        )
        return SubmissionOutcome(
            success=True, rows_written=written, batches=batches, status_code=200
        )

    def _post_with_retry(self, payload: list[dict[str, Any]], table: str) -> _PostResult:
        attempt = 0
        while True:
            result = self._post(payload, table)
            if (
                result.error is None
                or not result.retryable
                or attempt >= self._config.max_retries
            ):
                return result
            delay = min(2.0 * (2 ** attempt), 60.0)
            logger.warning(
                "Submission failed (%s), retrying in %.1fs (attempt %d/%d)",
                result.error, delay, attempt + 1, self._config.max_retries,
            )
            time.sleep(delay)
            attempt += 1

    def _post(self, payload: list[dict[str, Any]], table: str) -> _PostResult:
        body = json.dumps(payload).encode("utf-8")
        # The same date must appear in the signature and the x-ms-date header
        date = rfc1123_date()
        signature = build_signature(
            self._config.workspace_id,
            self._config.shared_key,
            date,
            len(body),
            "POST",
            CONTENT_TYPE,
            RESOURCE,
        )
        headers = {
            "Content-Type": CONTENT_TYPE,
            "Authorization": signature,
            "Log-Type": table,
            "x-ms-date": date,
        }
        if self._config.time_generated_field:
            headers["time-generated-field"] = self._config.time_generated_field

        try:
            resp = self._session.post(
                self._url,
                data=body,
                headers=headers,
                timeout=self._config.request_timeout,
            )
        except requests.RequestException as exc:
            return _PostResult(None, error=f"{type(exc).__name__}: {exc}", retryable=True)

        if resp.status_code == 200:
            return _PostResult(200)
        return _PostResult(
            resp.status_code,
            error=f"HTTP {resp.status_code}: {resp.text[:500]}",
            body=resp.text,
            retryable=resp.status_code in RETRYABLE_STATUSES,
        )
