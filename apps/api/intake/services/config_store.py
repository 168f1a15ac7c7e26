"""Key -> JSON value store for per-deployment form configuration.

The overlay never reaches for a global option table; it receives a
``ConfigStore`` explicitly. Single-key writes are atomic in both adapters,
which is all the overlay needs.
"""

import copy
import logging
import threading
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from intake.db.models import ConfigEntry

logger = logging.getLogger(__name__)


class ConfigStore(Protocol):
    """Port for deployment-scoped configuration values."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryConfigStore:
    """Process-local store, used by tests and the CLI dry runs."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._values: dict[str, Any] = copy.deepcopy(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._values:
                return default
            return copy.deepcopy(self._values[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._values)


class DbConfigStore:
    """ConfigStore backed by the ``config_entries`` table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.db.execute(
            select(ConfigEntry).where(ConfigEntry.key == key)
        ).scalar_one_or_none()
        if entry is None or entry.value is None:
            return default
        return entry.value

    def set(self, key: str, value: Any) -> None:
        self.db.merge(ConfigEntry(key=key, value=value))
        self.db.commit()
        logger.debug("Config entry written", extra={"config_key": key})

    def delete(self, key: str) -> None:
        entry = self.db.get(ConfigEntry, key)
        if entry is None:
            return
        self.db.delete(entry)
        self.db.commit()
