from __future__ import annotations

"""File-based persistence and debounced auto-save.

Public API:
- JsonFileStorage(base_dir): PersistenceProvider writing JSON files
- JsonFileStorage.save(state) / load() / clear()
- JsonFileStorage.create_backup(name) / list_backups() / get_storage_info()
- AutoSaveScheduler(callback, delay): resets its timer on every schedule(payload)
  call and passes the last payload to the callback once the delay elapses
"""

import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from dlms_toolkit.core.errors import StorageError
from dlms_toolkit.core.models import utc_now_iso
from dlms_toolkit.core.patch import count_nodes

__all__ = ["JsonFileStorage", "AutoSaveScheduler", "default_storage_dir"]

logger = logging.getLogger(__name__)

_STATE_FILE = "document.json"
_METADATA_FILE = "metadata.json"
_BACKUP_DIR = "backups"
_BACKUP_PREFIX = "backup_"


def default_storage_dir() -> Path:
    env_dir = os.environ.get("DLMS_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".dlms_toolkit" / "data"


class JsonFileStorage:
    """Persist the editor state as JSON files under ``base_dir``.

    The state is written atomically (temporary file then rename), so a
    failed write never truncates the previous save.
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else default_storage_dir()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def state_path(self) -> Path:
        return self._base_dir / _STATE_FILE

    # ------------------------------------------------------------------
    # PersistenceProvider
    # ------------------------------------------------------------------

    def save(self, state: Dict[str, Any]) -> None:
        text = self._dump(state)
        self._write_atomic(self.state_path, text)
        document = state.get("document") if isinstance(state, dict) else None
        self._update_metadata({
            "lastSaved": utc_now_iso(),
            "documentSize": len(text.encode("utf-8")),
            "nodeCount": count_nodes(document),
        })
        logger.info("Document saved to %s", self.state_path)

    def load(self) -> Optional[Dict[str, Any]]:
        path = self.state_path
        if not path.exists():
            logger.info("No saved document found in %s", self._base_dir)
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Error loading document from %s: %s", path, exc)
            raise StorageError(f"Could not load saved document: {exc}", {"path": str(path)}, exc) from exc
        if not isinstance(data, dict):
            raise StorageError("Invalid document structure in storage", {"path": str(path)})
        return data

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def get_metadata(self) -> Dict[str, Any]:
        path = self._base_dir / _METADATA_FILE
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.error("Error reading storage metadata: %s", exc)
            return {}

    def clear(self) -> None:
        for name in (_STATE_FILE, _METADATA_FILE):
            try:
                (self._base_dir / name).unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise StorageError(f"Could not clear storage: {exc}", {"file": name}, exc) from exc
        logger.info("Storage cleared: %s", self._base_dir)

    def create_backup(self, name: Optional[str] = None) -> str:
        """Copy the saved state into a named backup and return the name."""
        backup_name = name or utc_now_iso().replace(":", "-")
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", backup_name)
        payload = {
            "document": self.load(),
            "metadata": self.get_metadata(),
            "exportDate": utc_now_iso(),
        }
        self._write_atomic(self._base_dir / _BACKUP_DIR / f"{_BACKUP_PREFIX}{safe}.json", self._dump(payload))
        logger.info("Backup created: %s", safe)
        return safe

    def list_backups(self) -> List[str]:
        folder = self._base_dir / _BACKUP_DIR
        if not folder.is_dir():
            return []
        return sorted(
            p.stem[len(_BACKUP_PREFIX):] for p in folder.glob(f"{_BACKUP_PREFIX}*.json")
        )

    def get_storage_info(self) -> Dict[str, Any]:
        details: Dict[str, Any] = {}
        total = 0
        for name in (_STATE_FILE, _METADATA_FILE):
            path = self._base_dir / name
            size = path.stat().st_size if path.exists() else 0
            details[name] = {"size": size, "sizeKB": round(size / 1024, 2)}
            total += size
        return {
            "location": str(self._base_dir),
            "totalSize": total,
            "totalSizeKB": round(total / 1024, 2),
            "details": details,
            "backups": len(self.list_backups()),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _dump(data: Any) -> str:
        try:
            return json.dumps(data, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"State is not serializable: {exc}", cause=exc) from exc

    def _update_metadata(self, updates: Dict[str, Any]) -> None:
        metadata = self.get_metadata()
        metadata.update(updates)
        self._write_atomic(self._base_dir / _METADATA_FILE, self._dump(metadata))

    def _write_atomic(self, path: Path, text: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".tmp_", dir=str(path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(text)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            logger.error("Error writing %s: %s", path, exc)
            raise StorageError(f"Could not write {path.name}: {exc}", {"path": str(path)}, exc) from exc


class AutoSaveScheduler:
    """Debounce writes: every :meth:`schedule` call restarts the delay window.

    The payload handed to :meth:`schedule` is captured on the calling thread;
    the timer thread only ever passes that captured value to ``callback`` and
    never reads the caller's live state.

    Parameters
    ----------
    callback
        Called with the latest scheduled payload once the window elapses.
    delay : float, default=2.0
        Window length in seconds.
    enabled : bool, default=True
        When False, :meth:`schedule` does nothing.
    timer_factory
        Creates the timer; defaults to :class:`threading.Timer`.
    """

    def __init__(
        self,
        callback: Callable[[Any], None],
        delay: float = 2.0,
        enabled: bool = True,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self._callback = callback
        self._delay = max(0.0, float(delay))
        self.enabled = enabled
        self._timer_factory = timer_factory
        self._timer: Optional[Any] = None
        self._payload: Any = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def schedule(self, payload: Any = None) -> None:
        if not self.enabled:
            return
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._payload = payload
            timer = self._timer_factory(self._delay, self._fire)
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._payload = None

    def flush(self) -> None:
        """Run a scheduled write immediately."""
        with self._lock:
            if self._timer is None:
                return
            self._timer.cancel()
            payload = self._take()
        self._callback(payload)

    def _take(self) -> Any:
        payload, self._payload = self._payload, None
        self._timer = None
        return payload

    def _fire(self) -> None:
        with self._lock:
            # Cancelled or flushed while this timer was waiting for the lock.
            if self._timer is None:
                return
            payload = self._take()
        self._callback(payload)
