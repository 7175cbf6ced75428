"""
Credential persistence.

The protocol engine's credentials are an opaque blob (a JSON-compatible
dict). Stores only know how to load and save the whole blob; they never look
inside it.

Backends:
- FileCredentialStore: one JSON file under AUTH_DIR (default)
- RedisCredentialStore: one key under the gateway namespace
"""

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from redis.exceptions import RedisError

from gateway.config import Settings
from gateway.infra.redis import get_redis, namespaced

logger = logging.getLogger(__name__)

CREDENTIALS_FILENAME = "creds.json"
CREDENTIALS_KEY = namespaced("credentials")


class CredentialStoreError(Exception):
    """Raised when credentials cannot be persisted."""
    pass


class CredentialStore(ABC):
    """Load/save contract for the credential blob."""

    @abstractmethod
    async def load(self) -> dict[str, Any]:
        """Return the stored blob, or an empty dict if nothing is stored."""

    @abstractmethod
    async def save(self, credentials: dict[str, Any]) -> None:
        """Persist the whole blob. Raises CredentialStoreError on failure."""


class FileCredentialStore(CredentialStore):
    """
    JSON file in a fixed directory.

    Writes go to a temporary file in the same directory and are renamed over
    the previous blob, so a crash mid-write leaves the old credentials intact.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.path = self.directory / CREDENTIALS_FILENAME

    async def load(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._load_sync)

    async def save(self, credentials: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._save_sync, credentials)
        except (OSError, TypeError, ValueError) as e:
            raise CredentialStoreError(f"Failed to write {self.path}: {e}") from e
        logger.debug(f"Credentials saved to {self.path}")

    def _load_sync(self) -> dict[str, Any]:
        if not self.path.exists():
            logger.info(f"No stored credentials at {self.path}")
            return {}

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable credentials at {self.path}: {e}")
            return {}

        return data if isinstance(data, dict) else {}

    def _save_sync(self, credentials: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(credentials)

        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".creds-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def __repr__(self) -> str:
        return f"<FileCredentialStore(path='{self.path}')>"


class RedisCredentialStore(CredentialStore):
    """
    Single Redis key holding the JSON blob.

    Key: wa-gateway:v1:credentials
    """

    def __init__(self, key: str = CREDENTIALS_KEY):
        self.key = key

    async def load(self) -> dict[str, Any]:
        redis = await get_redis()
        if redis is None:
            logger.warning("Redis unavailable - starting without stored credentials")
            return {}

        try:
            data = await redis.get(self.key)
        except RedisError as e:
            logger.warning(f"Failed to load credentials from Redis: {e}")
            return {}

        if data is None:
            return {}

        try:
            blob = json.loads(data)
        except ValueError as e:
            logger.warning(f"Ignoring unreadable credentials in Redis: {e}")
            return {}
        return blob if isinstance(blob, dict) else {}

    async def save(self, credentials: dict[str, Any]) -> None:
        redis = await get_redis()
        if redis is None:
            raise CredentialStoreError("Redis unavailable")

        try:
            await redis.set(self.key, json.dumps(credentials))
        except (RedisError, TypeError, ValueError) as e:
            raise CredentialStoreError(f"Failed to save credentials to Redis: {e}") from e

    def __repr__(self) -> str:
        return f"<RedisCredentialStore(key='{self.key}')>"


def get_credential_store(settings: Settings, backend: Optional[str] = None) -> CredentialStore:
    """Build the store selected by CREDENTIAL_BACKEND."""
    backend = backend or settings.credential_backend
    if backend == "redis":
        return RedisCredentialStore()
    return FileCredentialStore(settings.auth_dir)
