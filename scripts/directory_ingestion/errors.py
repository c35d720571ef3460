"""Exception hierarchy for the directory ingestion run."""

from __future__ import annotations

from typing import Optional


class IngestionError(Exception):
    pass


class ConfigurationError(IngestionError):
    """Missing/empty credentials or a secret that could not be resolved."""


class AuthenticationError(IngestionError):
    """The identity provider rejected the client certificate or app."""


class ExtractionError(IngestionError):
    pass


class MappingError(IngestionError):
    def __init__(self, message: str, record_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class IngestionTransportError(IngestionError):
    """Non-200 response or network failure on a log submission."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
