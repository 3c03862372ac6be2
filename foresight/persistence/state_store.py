"""
Key-value persistence seam for ledgers and experiment records.

The host application owns the storage technology; the library only needs a
place to read and write JSON-compatible documents under stable keys:

- ``selector/performance/<predictor_id>``
- ``scorer/calibration``
- ``experiments/<test_id>/config``
- ``experiments/<test_id>/results/<sequence>`` (one document per result)

Every backend error surfaces as StorageFailure so callers can degrade
gracefully instead of failing the request.
"""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import quote, unquote

from loguru import logger

from foresight.errors import StorageFailure


class StateStore(ABC):
    """Abstract JSON key-value store."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Read the document stored under ``key``."""
        pass

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Write (replace) the document stored under ``key``."""
        pass

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """List stored keys starting with ``prefix``."""
        pass


class InMemoryStateStore(StateStore):
    """Process-local store, mostly useful for tests and embedding."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def put(self, key: str, value: Any) -> None:
        # Round-trip through JSON so stored documents never alias live state
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageFailure(key, "write", str(e)) from e
        with self._lock:
            self._data[key] = raw

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class JSONFileStateStore(StateStore):
    """
    One JSON file per key under a root directory.

    Writes go to a temporary file in the same directory which is then
    atomically renamed over the target, so a crash never leaves a partial
    document behind.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        logger.info(f"Initialized JSONFileStateStore at {self.root}")

    def _path_for(self, key: str) -> Path:
        return self.root / f"{quote(key, safe='')}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path_for(key)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StorageFailure(key, "read", str(e)) from e

    def put(self, key: str, value: Any) -> None:
        path = self._path_for(key)
        try:
            payload = json.dumps(value, indent=2)
        except (TypeError, ValueError) as e:
            raise StorageFailure(key, "write", str(e)) from e
        try:
            with self._lock, self._atomic_write(path) as f:
                f.write(payload)
        except OSError as e:
            raise StorageFailure(key, "write", str(e)) from e

    def keys(self, prefix: str = "") -> List[str]:
        found = [unquote(p.stem) for p in self.root.glob("*.json")]
        return sorted(k for k in found if k.startswith(prefix))

    @contextmanager
    def _atomic_write(self, filepath: Path) -> Iterator[Any]:
        """
        Context manager for atomic file writes.

        Args:
            filepath: Target file path

        Yields:
            File object for writing
        """
        temp_fd, temp_path = tempfile.mkstemp(
            dir=filepath.parent, prefix=f".{filepath.name}.", suffix=".tmp"
        )

        try:
            with os.fdopen(temp_fd, "w") as f:
                yield f

            os.replace(temp_path, filepath)

        except Exception:
            try:
                os.unlink(temp_path)
            except FileNotFoundError:
                pass
            raise


def safe_put(store: Optional[StateStore], key: str, value: Any) -> bool:
    """
    Write to ``store`` without letting a storage fault reach the caller.

    Returns:
        True if the write succeeded (or there is no store), False if it was skipped
    """
    if store is None:
        return True
    try:
        store.put(key, value)
        return True
    except StorageFailure as e:
        logger.error(f"Skipping persisted update, serving from memory: {e}")
        return False


def safe_get(store: Optional[StateStore], key: str, default: Any = None) -> Any:
    """Read from ``store``, returning ``default`` (and logging) on failure."""
    if store is None:
        return default
    try:
        return store.get(key, default)
    except StorageFailure as e:
        logger.error(f"Could not load persisted state, using defaults: {e}")
        return default
