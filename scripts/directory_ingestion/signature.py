"""SharedKey request signing for the Log Analytics HTTP Data Collector API."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional

from scripts.directory_ingestion.errors import ConfigurationError


def rfc1123_date(now: Optional[datetime] = None) -> str:
    """Format a UTC timestamp as e.g. 'Sun, 06 Nov 1994 08:49:37 GMT'."""
    now = now or datetime.now(timezone.utc)
    return format_datetime(now.astimezone(timezone.utc), usegmt=True)


def decode_shared_key(shared_key: str) -> bytes:
    """Return the raw HMAC key. Raises ConfigurationError if not base64."""
    try:
        return base64.b64decode(shared_key, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError("Log Analytics shared key is not valid base64") from exc


def build_signature(
    workspace_id: str,
    shared_key: str,
    date: str,
    content_length: int,
    method: str,
    content_type: str,
    resource: str,
) -> str:
    """Return the Authorization header value for one submission.

    The string to sign is
    ``METHOD\\nCONTENT_LENGTH\\nCONTENT_TYPE\\nx-ms-date:DATE\\nRESOURCE``,
    hashed with HMAC-SHA256 keyed by the base64-decoded shared key.
    """
    string_to_hash = (
        f"{method}\n{content_length}\n{content_type}\nx-ms-date:{date}\n{resource}"
    )
    digest = hmac.new(
        decode_shared_key(shared_key),
        string_to_hash.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).digest()
    encoded_hash = base64.b64encode(digest).decode("ascii")
    return f"SharedKey {workspace_id}:{encoded_hash}"
