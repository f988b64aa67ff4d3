"""
Key/value stores used by the client.

``LocalStorage`` is durable: a JSON file shared by every instance opened
on the same path (one instance per browser tab). Writes go through a file
lock, and every other instance on the same path is told about the change,
which is how one tab learns that another tab changed the cart.

``SessionStorage`` lives only as long as the object (one browser session).
"""

import json
import logging
import os
import threading
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from filelock import FileLock

logger = logging.getLogger(__name__)


@dataclass
class StorageEvent:
    """Change made to a key by another instance."""
    key: Optional[str]
    old_value: Optional[str]
    new_value: Optional[str]


StorageListener = Callable[[StorageEvent], None]

# Open LocalStorage instances per resolved file path
_instances: dict[str, "weakref.WeakSet[LocalStorage]"] = {}
_instances_guard = threading.Lock()


class SessionStorage:
    """In-memory store scoped to one session."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)


class LocalStorage:
    """
    Durable store backed by a JSON file.

    Args:
        path: JSON file holding all keys
        lock_timeout: Seconds to wait for the file lock
    """

    def __init__(self, path: str, lock_timeout: float = 10):
        self.path = Path(path)
        self._lock = FileLock(f"{self.path}.lock", timeout=lock_timeout)
        self._listeners: list[StorageListener] = []

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with _instances_guard:
            _instances.setdefault(self._registry_key, weakref.WeakSet()).add(self)

    @property
    def _registry_key(self) -> str:
        return str(self.path.resolve())

    # =========================================================================
    # FILE ACCESS
    # =========================================================================

    def _load(self) -> dict[str, str]:
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable storage file {self.path}, starting empty: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, str]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False)
        os.replace(tmp, self.path)

    def _mutate(self, key: Optional[str], value: Optional[str]) -> None:
        """Set (value given), remove (value None) or clear everything (key None)."""
        with self._lock:
            data = self._load()
            old_value = data.get(key) if key is not None else None
            if key is None:
                data = {}
            elif value is None:
                if key not in data:
                    return
                del data[key]
            else:
                data[key] = value
            self._save(data)
        self._broadcast(StorageEvent(key=key, old_value=old_value, new_value=value))

    def _broadcast(self, event: StorageEvent) -> None:
        with _instances_guard:
            peers = [p for p in _instances.get(self._registry_key, ()) if p is not self]
        for peer in peers:
            peer._dispatch(event)

    def _dispatch(self, event: StorageEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        self._mutate(key, str(value))

    def remove_item(self, key: str) -> None:
        self._mutate(key, None)

    def clear(self) -> None:
        self._mutate(None, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._load())

    def add_listener(self, listener: StorageListener) -> None:
        """Call ``listener`` whenever another instance changes this file."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StorageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
