"""Decryption of secrets stored encrypted at rest.

The Log Analytics shared key may be kept in the environment or .env file as
a Fernet token (``fernet:<token>``) instead of as plaintext. Config loading
takes a ``SecretDecryptor`` so the rest of the run only ever sees plaintext.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken

from scripts.directory_ingestion.errors import ConfigurationError

logger = logging.getLogger("ingestion.secrets")

FERNET_PREFIX = "fernet:"


class SecretDecryptor(Protocol):
    def decrypt(self, ciphertext: str) -> str:
        ...


class PlaintextDecryptor:
    """Returns values unchanged. Used when secrets come straight from env."""

    def decrypt(self, ciphertext: str) -> str:
        return ciphertext


class FernetSecretDecryptor:
    """Decrypts ``fernet:``-prefixed values with SECRET_ENCRYPTION_KEY.

    Values without the prefix are treated as plaintext and returned as-is.
    """

    def __init__(self, key: Optional[str]) -> None:
        self._key = key.strip() if key else None

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext.startswith(FERNET_PREFIX):
            return ciphertext
        if not self._key:
            raise ConfigurationError(
                "Secret is encrypted but SECRET_ENCRYPTION_KEY is not set"
            )

        token = ciphertext[len(FERNET_PREFIX):].strip().encode("ascii", "ignore")
        try:
            cipher = Fernet(self._key.encode("ascii", "ignore"))
        except ValueError as exc:
            raise ConfigurationError(
                "SECRET_ENCRYPTION_KEY must be a urlsafe base64-encoded 32-byte key"
            ) from exc
        try:
            plaintext = cipher.decrypt(token)
        except InvalidToken as exc:
            # The token itself is never included in the message
            raise ConfigurationError(
                "Encrypted secret could not be decrypted with SECRET_ENCRYPTION_KEY"
            ) from exc
        logger.debug("Decrypted secret stored at rest")
        return plaintext.decode("utf-8")
