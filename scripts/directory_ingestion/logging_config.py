"""JSON log lines for ingestion runs, with credential redaction."""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Iterable

# Run context attached through ``extra=`` by the pipeline and clients
RUN_FIELDS = (
    "run_id", "state", "table", "records", "skipped", "status_code", "duration_s",
)

_CREDENTIAL_PATTERNS = [
    re.compile(r"(SharedKey [^:\s]+:)[A-Za-z0-9+/=]+"),
    re.compile(r"(Bearer )[A-Za-z0-9\-_.~+/=]+"),
    re.compile(r"(-----BEGIN [A-Z ]*PRIVATE KEY-----)[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----"),
]
REDACTED = "[REDACTED]"


class CredentialRedactionFilter(logging.Filter):
    """Masks signatures, bearer tokens, private keys and registered secrets."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self._literals = [v.strip() for v in secrets if isinstance(v, str) and v.strip()]

    def redact(self, text: str) -> str:
        for pattern in _CREDENTIAL_PATTERNS:
            text = pattern.sub(lambda m: m.group(1) + REDACTED, text)
        for secret in self._literals:
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.redact(record.getMessage())
        record.args = None
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(
            (key, getattr(record, key))
            for key in RUN_FIELDS
            if getattr(record, key, None) is not None
        )
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", secrets: Iterable[str] = ()) -> None:
    """Route the ``ingestion`` logger tree to stderr as JSON.

    ``secrets`` are literal values (e.g. the decrypted shared key) that must
    never appear in output.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(CredentialRedactionFilter(secrets))
    root = logging.getLogger("ingestion")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)
    root.propagate = False
