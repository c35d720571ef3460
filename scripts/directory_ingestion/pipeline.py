"""Run orchestration: extract the directory, then submit one full snapshot.

Each run is a full refresh. Re-running against an unchanged directory
submits the same rows again and Log Analytics stores them twice; it has no
upsert semantics.
"""

from __future__ import annotations

import enum
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from scripts.directory_ingestion.base_provider import BaseProvider
from scripts.directory_ingestion.config import LogAnalyticsConfig
from scripts.directory_ingestion.errors import IngestionError
from scripts.directory_ingestion.log_analytics import LogAnalyticsClient
from scripts.directory_ingestion.models import UserRecord

logger = logging.getLogger("ingestion.pipeline")


class RunState(str, enum.Enum):
    INIT = "INIT"
    AUTHENTICATING = "AUTHENTICATING"
    EXTRACTING = "EXTRACTING"
    SUBMITTING = "SUBMITTING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class RunResult:
    run_id: str
    state: RunState = RunState.INIT
    extracted: int = 0
    skipped: int = 0
    rows_written: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.DONE

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1


class IngestionPipeline:
    def __init__(
        self,
        credential: LogAnalyticsConfig,
        provider: BaseProvider,
        client: LogAnalyticsClient,
        progress_log_interval: int = 100,
    ) -> None:
        self.credential = credential
        self.provider = provider
        self.client = client
        self.progress_log_interval = max(progress_log_interval, 1)

    def _transition(self, result: RunResult, state: RunState) -> None:
        result.state = state
        logger.debug("Run %s -> %s", result.run_id, state.value,
                     extra={"run_id": result.run_id, "state": state.value})

    def _collect(self, result: RunResult) -> list[UserRecord]:
        records: list[UserRecord] = []
        for index, record in enumerate(self.provider.extract(), start=1):
            records.append(record)
            total = self.provider.expected_total or "?"
            logger.debug("Processed user %d/%s: %s", index, total, record.userPrincipalName)
            if index % self.progress_log_interval == 0:
                logger.info("Processed user %d/%s", index, total,
                            extra={"run_id": result.run_id, "records": index})
        # The Graph count is approximate; the final line reports the exact total
        if records and len(records) % self.progress_log_interval != 0:
            logger.info("Processed user %d/%d", len(records), len(records),
                        extra={"run_id": result.run_id, "records": len(records)})
        return records

    def run(self, table_name: Optional[str] = None) -> RunResult:
        result = RunResult(run_id=str(uuid.uuid4()))
        table = table_name or self.credential.table_name
        started = time.monotonic()

        try:
            self.credential.validate()

            self._transition(result, RunState.AUTHENTICATING)
            self.provider.authenticate()

            self._transition(result, RunState.EXTRACTING)
            records = self._collect(result)
            result.extracted = len(records)
            result.skipped = self.provider.skipped
            logger.info(
                "Extracted %d users (%d skipped)", result.extracted, result.skipped,
                extra={"run_id": result.run_id, "records": result.extracted,
                       "skipped": result.skipped},
            )

            if not records:
                logger.info("No users matched, nothing to submit",
                            extra={"run_id": result.run_id})
                self._transition(result, RunState.DONE)
                return result

            self._transition(result, RunState.SUBMITTING)
            outcome = self.client.submit(records, table)
            result.rows_written = outcome.rows_written
            outcome.raise_for_status()
        except IngestionError as exc:
            result.error = str(exc)
            self._transition(result, RunState.FAILED)
            logger.error(
                "Ingestion run failed: %s", exc,
                extra={"run_id": result.run_id, "state": result.state.value,
                       "table": table, "records": result.rows_written},
            )
            return result

        self._transition(result, RunState.DONE)
        logger.info(
            "Wrote %d rows to %s_CL", result.rows_written, table,
            extra={
                "run_id": result.run_id,
                "table": table,
                "records": result.rows_written,
                "duration_s": round(time.monotonic() - started, 2),
            },
        )
        return result
