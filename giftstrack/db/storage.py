"""
giftstrack/db/storage.py

Purpose: Persistent key-value stores

- KeyValueStore protocol shared by the cache and the session
- In-memory store (tests, ephemeral sessions)
- JSON-file store (durable between runs)
- Fernet-encrypted wrapper used as the secure store for tokens
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Union
from uuid import uuid4

from cryptography.fernet import Fernet, InvalidToken

from giftstrack.core.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """
    Async string key-value store.

    Every call is a suspension point. Writes are unconditional overwrites;
    among overlapping writes to one key the last to complete wins.
    """

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def multi_remove(self, keys: Iterable[str]) -> None: ...

    async def get_all_keys(self) -> List[str]: ...

    async def clear(self) -> None: ...


class MemoryKeyValueStore:
    """Dict-backed store. Each call yields to the event loop once."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        await asyncio.sleep(0)
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(0)
        self._data[key] = value

    async def remove(self, key: str) -> None:
        await asyncio.sleep(0)
        self._data.pop(key, None)

    async def multi_remove(self, keys: Iterable[str]) -> None:
        await asyncio.sleep(0)
        for key in list(keys):
            self._data.pop(key, None)

    async def get_all_keys(self) -> List[str]:
        await asyncio.sleep(0)
        return list(self._data.keys())

    async def clear(self) -> None:
        await asyncio.sleep(0)
        self._data.clear()


class JsonFileKeyValueStore:
    """
    Store persisted as a single JSON object file: { key: value, ... }.

    - Loaded lazily on first access; a corrupt file starts empty.
    - Every mutation rewrites the file from a worker thread; rewrites are
      serialized and each goes through its own temp file.
    """

    def __init__(self, path: Union[str, os.PathLike]) -> None:
        self._path = Path(path)
        self._data: Dict[str, str] = {}
        self._loaded = False
        self._write_lock = asyncio.Lock()

    def _load(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable store file {self._path}: {e}")
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _save(self, snapshot: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(f"{self._path.name}.tmp-{uuid4().hex}")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(snapshot, f, sort_keys=True)
        os.replace(tmp, self._path)

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        data = await asyncio.to_thread(self._load)
        if not self._loaded:
            self._data = data
            self._loaded = True

    async def _persist(self) -> None:
        async with self._write_lock:
            await asyncio.to_thread(self._save, dict(self._data))

    async def get(self, key: str) -> Optional[str]:
        await self._ensure_loaded()
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        await self._ensure_loaded()
        self._data[key] = value
        await self._persist()

    async def remove(self, key: str) -> None:
        await self._ensure_loaded()
        if self._data.pop(key, None) is not None:
            await self._persist()

    async def multi_remove(self, keys: Iterable[str]) -> None:
        await self._ensure_loaded()
        removed = [k for k in list(keys) if self._data.pop(k, None) is not None]
        if removed:
            await self._persist()

    async def get_all_keys(self) -> List[str]:
        await self._ensure_loaded()
        return list(self._data.keys())

    async def clear(self) -> None:
        await self._ensure_loaded()
        self._data.clear()
        await self._persist()


def _to_fernet(key: Union[str, bytes]) -> Fernet:
    """Construct a Fernet instance from a urlsafe base64-encoded 32-byte key."""
    if isinstance(key, str):
        key = key.encode("utf-8")
    return Fernet(key)


class EncryptedKeyValueStore:
    """
    Secure store: values are Fernet-encrypted before reaching the inner store.

    A value that fails to decrypt (wrong key, tampering) reads as absent.
    """

    def __init__(self, inner: KeyValueStore, fernet_key: Union[str, bytes]) -> None:
        self._inner = inner
        self._fernet = _to_fernet(fernet_key)

    async def get(self, key: str) -> Optional[str]:
        raw = await self._inner.get(key)
        if raw is None:
            return None
        try:
            return self._fernet.decrypt(raw.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            logger.warning(f"Secure store value for '{key}' could not be decrypted")
            return None

    async def set(self, key: str, value: str) -> None:
        token = self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")
        await self._inner.set(key, token)

    async def remove(self, key: str) -> None:
        await self._inner.remove(key)

    async def multi_remove(self, keys: Iterable[str]) -> None:
        await self._inner.multi_remove(keys)

    async def get_all_keys(self) -> List[str]:
        return await self._inner.get_all_keys()

    async def clear(self) -> None:
        await self._inner.clear()
