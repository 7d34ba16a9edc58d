"""
Dispatch journal used to resume an interrupted run.

The journal records, per window, which partition keys have already been
notified. A resumed run skips those keys. A crash after a notification is
sent but before the journal is saved still re-sends that partition, so
delivery stays at-least-once.
"""

import json
import threading
from datetime import datetime, timezone
from pathlib import Path

from rep_digest.core.models import QueryWindow
from rep_digest.observability.logger import get_logger

logger = get_logger(__name__)


class DispatchJournal:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._data: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()
        self.load()

    @staticmethod
    def _window_key(window: QueryWindow) -> str:
        return f"{window.start.isoformat()}..{window.end.isoformat()}"

    def load(self) -> None:
        if not self.path.exists():
            self._data = {}
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(f"Dispatch journal {self.path} is unreadable; starting empty")
            self._data = {}
            return
        # window key -> {partition key: dispatched at}
        if not isinstance(data, dict) or not all(isinstance(entries, dict) for entries in data.values()):
            logger.warning(f"Dispatch journal {self.path} has an unexpected layout; starting empty")
            data = {}
        self._data = data

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.path)

    def dispatched_keys(self, window: QueryWindow) -> set[str]:
        with self._lock:
            return set(self._data.get(self._window_key(window), {}))

    def record(self, window: QueryWindow, key: str) -> None:
        with self._lock:
            entries = self._data.setdefault(self._window_key(window), {})
            entries[key] = datetime.now(timezone.utc).isoformat()
            self.save()

    def clear(self, window: QueryWindow) -> None:
        with self._lock:
            self._data.pop(self._window_key(window), None)
            self.save()
