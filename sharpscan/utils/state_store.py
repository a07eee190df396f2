"""
Alert record stores.

The alert state machine only needs get/set. The JSON file store adds bulk
load/flush at process boundaries and serializes with orjson.
"""

import os
from pathlib import Path
from typing import Iterator, Optional, Protocol

import orjson
import structlog

from sharpscan.errors import PersistenceError
from sharpscan.models.schemas import AlertRecord

logger = structlog.get_logger()


class AlertStore(Protocol):
    """Key-value contract: composite market key -> AlertRecord."""

    def get(self, key: str) -> Optional[AlertRecord]:
        ...

    def set(self, key: str, record: AlertRecord) -> None:
        ...


class InMemoryAlertStore:
    """Process-local store. Nothing survives a restart."""

    def __init__(self) -> None:
        self._records: dict[str, AlertRecord] = {}

    def get(self, key: str) -> Optional[AlertRecord]:
        return self._records.get(key)

    def set(self, key: str, record: AlertRecord) -> None:
        self._records[key] = record

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)


class JsonFileAlertStore(InMemoryAlertStore):
    """
    In-memory store backed by a JSON file.

    Call load() once at startup and flush() at the end of each scan cycle.
    With autoflush=True every set() is written through immediately.
    Stale records are kept; expiry is decided by the state machine on read.
    """

    def __init__(self, path: str | Path, autoflush: bool = False):
        super().__init__()
        self.path = Path(path)
        self.autoflush = autoflush
        self._dirty = False
        self.logger = logger.bind(component="alert_store", path=str(self.path))

    def load(self) -> int:
        """Load records from disk. A missing file is an empty store."""
        if not self.path.exists():
            self.logger.info("No state file, starting empty")
            return 0

        try:
            raw = self.path.read_bytes()
            data = orjson.loads(raw) if raw.strip() else {}
        except (OSError, orjson.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read state file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise PersistenceError(f"State file {self.path} is not a JSON object")

        loaded = 0
        for key, value in data.items():
            try:
                self._records[key] = AlertRecord.from_dict(key, value)
                loaded += 1
            except (KeyError, TypeError, ValueError):
                self.logger.debug("Skipping malformed state record", key=key)

        self.logger.info("State loaded", records=loaded)
        return loaded

    def set(self, key: str, record: AlertRecord) -> None:
        super().set(key, record)
        self._dirty = True
        if self.autoflush:
            self.flush()

    def flush(self) -> None:
        """Write all records to disk (atomic replace). No-op when clean."""
        if not self._dirty:
            return

        payload = {key: record.to_dict() for key, record in self._records.items()}
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Failed to write state file {self.path}: {e}") from e

        self._dirty = False
        self.logger.debug("State flushed", records=len(payload))
