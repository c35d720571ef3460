"""Abstract base class for directory providers."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Iterator, Optional

from scripts.directory_ingestion.errors import MappingError
from scripts.directory_ingestion.models import UserRecord

logger = logging.getLogger("ingestion.provider")


class BaseProvider(ABC):
    """Each provider overrides iter_raw_users() and declares PROVIDER_NAME.

    extract() maps raw objects into UserRecord lazily. Every call starts a
    new pass over the directory.
    """

    PROVIDER_NAME: str = ""

    def __init__(self, mapping_error_policy: str = "skip") -> None:
        self.mapping_error_policy = mapping_error_policy
        self.skipped = 0
        self.expected_total: Optional[int] = None

    def authenticate(self) -> None:
        """Acquire provider credentials. Raises AuthenticationError."""

    @abstractmethod
    def iter_raw_users(self) -> Iterator[Any]:
        """Yield raw user objects page by page."""

    def extract(self) -> Iterator[UserRecord]:
        self.skipped = 0
        self.expected_total = None
        for raw in self.iter_raw_users():
            try:
                yield UserRecord.from_graph(raw)
            except MappingError as exc:
                if self.mapping_error_policy == "abort":
                    raise
                self.skipped += 1
                logger.warning(
                    "Skipping user %s: %s",
                    exc.record_id or "<unknown>",
                    exc,
                    extra={"skipped": self.skipped},
                )

    # ------------------------------------------------------------------
    # Rate-limiting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _rate_limit_sleep(
        attempt: int,
        base_seconds: float = 1.0,
        retry_after: Optional[float] = None,
    ) -> None:
        """Exponential backoff sleep for rate limiting."""
        delay = retry_after if retry_after is not None else base_seconds * (2 ** attempt)
        delay = min(delay, 60.0)  # cap at 60s
        logger.warning("Rate limited, sleeping %.1fs (attempt %d)", delay, attempt)
        time.sleep(delay)
