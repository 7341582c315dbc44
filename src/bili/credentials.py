"""Credential stores for the desktop and browser runtimes."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, MutableMapping

from bili.exceptions import CredentialStoreError
from bili.models import Credential, Runtime
from bili.storage import Storage

logger = logging.getLogger(__name__)

STORE_KEY = "bilibili_auth"


class CredentialStore(ABC):
    """Get, set and delete the single persisted credential."""

    @abstractmethod
    async def get(self) -> Credential | None: ...

    @abstractmethod
    async def set(self, credential: Credential) -> None: ...

    @abstractmethod
    async def delete(self) -> None: ...


class DurableCredentialStore(CredentialStore):
    """Keeps the credential in auth.json; writes are flushed before returning."""

    def __init__(self, storage: Storage, key: str = STORE_KEY) -> None:
        self._storage = storage
        self._key = key

    async def get(self) -> Credential | None:
        try:
            record = await asyncio.to_thread(self._storage.read_key, self._key)
        except (OSError, ValueError) as e:
            raise CredentialStoreError(f"Failed to read credential: {e}") from e
        return _credential_from_record(record)

    async def set(self, credential: Credential) -> None:
        try:
            await asyncio.to_thread(self._storage.write_key, self._key, credential.to_record())
        except (OSError, ValueError) as e:
            raise CredentialStoreError(f"Failed to save credential: {e}") from e

    async def delete(self) -> None:
        try:
            await asyncio.to_thread(self._storage.delete_key, self._key)
        except (OSError, ValueError) as e:
            raise CredentialStoreError(f"Failed to delete credential: {e}") from e


class EphemeralCredentialStore(CredentialStore):
    """Never persists session cookies.

    Each call clears whatever an older build may have left under the store key
    in ``legacy`` (session-scoped storage shared with the host, if any).
    """

    def __init__(self, legacy: MutableMapping[str, Any] | None = None, key: str = STORE_KEY) -> None:
        self._legacy = legacy
        self._key = key

    def _clear_legacy(self) -> None:
        if self._legacy is not None and self._legacy.pop(self._key, None) is not None:
            logger.info("Removed legacy persisted credential")

    async def get(self) -> Credential | None:
        self._clear_legacy()
        return None

    async def set(self, credential: Credential) -> None:
        self._clear_legacy()

    async def delete(self) -> None:
        self._clear_legacy()


def _credential_from_record(record: Any) -> Credential | None:
    if not isinstance(record, dict):
        return None

    cookies = record.get("cookies")
    if not isinstance(cookies, str) or not cookies:
        return None
    return Credential(cookies=cookies)


def create_credential_store(
    runtime: Runtime,
    storage: Storage,
    legacy: MutableMapping[str, Any] | None = None,
) -> CredentialStore:
    """Return the store that matches the runtime's storage capability."""
    if runtime == Runtime.DESKTOP:
        return DurableCredentialStore(storage)
    return EphemeralCredentialStore(legacy)
