# src/status_board/status_store.py

import json
import logging
import os
import tempfile
import threading
import typing
from datetime import datetime, timezone
from pathlib import Path

from .errors import InvalidStatusKeyError, InvalidTimestampError, StatusStoreError

logger = logging.getLogger(__name__)

StatusRecord = typing.Dict[str, str]


def format_timestamp(value: datetime) -> str:
    """UTC, millisecond precision, trailing Z (2026-01-29T15:32:41.000Z)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_timestamp() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def parse_timestamp(value: str) -> str:
    """Validates an ISO-8601 string and returns it in the stored format."""
    try:
        return format_timestamp(datetime.fromisoformat(value.strip()))
    except (ValueError, AttributeError) as e:
        raise InvalidTimestampError() from e


class StatusStore:
    """
    The single status record, kept as one JSON file.

    Every read and update runs under one lock, so the lazy first write cannot
    happen twice and concurrent updates of different keys cannot overwrite
    each other. The whole record is rewritten on each update.
    """

    def __init__(self, path: Path, keys: typing.Sequence[str]):
        self.path = Path(path)
        self.keys = list(keys)
        self._lock = threading.Lock()

    def read(self) -> StatusRecord:
        with self._lock:
            return self._read_or_create()

    def update(self, key: str, timestamp: str) -> StatusRecord:
        with self._lock:
            current = self._read_or_create()
            # Key set comes from what is persisted, not from configuration
            if key not in current:
                raise InvalidStatusKeyError(key)
            updated = {**current, key: timestamp}
            self._write(updated)
            logger.info("Status key %s set to %s", key, timestamp)
            return updated

    def _read_or_create(self) -> StatusRecord:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            now = now_timestamp()
            record = {key: now for key in self.keys}
            self._write(record)
            logger.info("Created status record at %s", self.path)
            return record

        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error("Status record at %s is not valid JSON", self.path)
            raise StatusStoreError() from e
        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            logger.error("Status record at %s is not a mapping of timestamps", self.path)
            raise StatusStoreError()
        return data

    def _write(self, record: StatusRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise
