"""Fernet wrapper used to keep OAuth tokens encrypted at rest.

``APP_ENCRYPTION_KEY`` holds one or more comma-separated Fernet keys. The
first key encrypts; every key is tried when decrypting, so a new key can be
prepended and old rows re-encrypted with ``rotate`` at leisure.

When the variable is unset a process-local key is generated, so rows written
by one process cannot be read by another.
"""
from __future__ import annotations
import logging
import os
from functools import lru_cache
from typing import List

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

logger = logging.getLogger(__name__)


class EncryptionService:
    ENV_KEY = "APP_ENCRYPTION_KEY"

    def __init__(self, key: bytes | str | None = None):
        keys = self._parse_keys(key or os.getenv(self.ENV_KEY))
        if not keys:
            logger.warning("%s not set, generating an ephemeral token encryption key", self.ENV_KEY)
            generated = Fernet.generate_key()
            os.environ[self.ENV_KEY] = generated.decode()
            keys = [generated]
        self._fernet = MultiFernet([Fernet(k) for k in keys])

    @staticmethod
    def _parse_keys(raw: bytes | str | None) -> List[bytes]:
        if not raw:
            return []
        if isinstance(raw, bytes):
            raw = raw.decode()
        return [k.strip().encode() for k in raw.split(",") if k.strip()]

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            raise ValueError("INVALID_ENCRYPTED_VALUE")

    def rotate(self, token: str) -> str:
        """Re-encrypt a stored value under the current primary key."""
        return self._fernet.rotate(token.encode()).decode()


@lru_cache(maxsize=1)
def get_encryption_service() -> EncryptionService:
    return EncryptionService()
