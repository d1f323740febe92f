"""Named-diagram registry and last-opened slot over a key-value substrate.

PersistenceStore is the single writer of the persisted registry. The whole
registry index is serialised and written with one ``set``; the in-memory copy
is swapped only after that write succeeds, so a rejected write leaves both the
persisted and the cached registry exactly as they were.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from diagramkeep.document.icons import IconCatalog
from diagramkeep.document.model import DocumentData, SavedRecord
from diagramkeep.errors import CorruptRegistry, QuotaExceeded, RecordNotFound, StorageError
from diagramkeep.storage.substrate import CapacityError, KeyValueSubstrate

logger = logging.getLogger(__name__)

REGISTRY_KEY = "diagramkeep-diagrams"
LAST_OPENED_KEY = "diagramkeep-last-opened"
LAST_OPENED_DATA_KEY = "diagramkeep-last-opened-data"


class PersistenceStore:
    """Registry of saved diagrams plus the session-restore side channel."""

    def __init__(self, substrate: KeyValueSubstrate, catalog: IconCatalog) -> None:
        self.substrate = substrate
        self._catalog = catalog
        self._records: list[SavedRecord] = self._read_registry()
        self._last_issued_id = 0

    # ── Substrate access ─────────────────────────────────────

    def _write(self, key: str, value: str) -> None:
        try:
            self.substrate.set(key, value)
        except CapacityError as e:
            raise QuotaExceeded(key, e.requested, e.quota) from e
        except OSError as e:
            raise StorageError(f"Failed to write '{key}': {e}") from e

    def _restore(self, key: str, previous: str | None) -> None:
        try:
            if previous is None:
                self.substrate.remove(key)
            else:
                self.substrate.set(key, previous)
        except OSError as e:
            logger.error("Failed to roll back '%s': %s", key, e)

    def _read_registry(self) -> list[SavedRecord]:
        raw = self.substrate.get(REGISTRY_KEY)
        if not raw:
            return []
        try:
            entries = json.loads(raw)
            if not isinstance(entries, list):
                raise ValueError(f"expected a list, got {type(entries).__name__}")
            records = [SavedRecord.from_dict(entry) for entry in entries]
        except (ValueError, KeyError, TypeError) as e:
            raise CorruptRegistry(f"Saved diagram registry is unreadable: {e}") from e
        logger.info("Loaded %d saved diagrams", len(records))
        return records

    def _commit(self, records: list[SavedRecord]) -> None:
        payload = json.dumps([record.to_dict() for record in records], ensure_ascii=False)
        self._write(REGISTRY_KEY, payload)
        self._records = records

    # ── Named registry ───────────────────────────────────────

    def next_id(self) -> str:
        """Monotonic millisecond token, unique among ids issued by this store."""
        candidate = int(time.time() * 1000)
        floor = self._last_issued_id
        for record in self._records:
            if record.id.isdigit():
                floor = max(floor, int(record.id))
        if candidate <= floor:
            candidate = floor + 1
        self._last_issued_id = candidate
        return str(candidate)

    def save(self, record: SavedRecord) -> SavedRecord:
        """Insert or replace ``record`` by id. Raises QuotaExceeded.

        SavedRecord strips icons on construction, so nothing here can write a
        catalog into storage.
        """
        records = list(self._records)
        for index, existing in enumerate(records):
            if existing.id == record.id:
                records[index] = record
                break
        else:
            records.append(record)

        self._commit(records)
        logger.info("Saved diagram '%s' (id=%s)", record.name, record.id)
        return record

    def find(self, record_id: str) -> SavedRecord | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def get(self, record_id: str) -> SavedRecord:
        record = self.find(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    def load(self, record_id: str) -> DocumentData:
        """Return the saved document with the live icon catalog attached."""
        return self.get(record_id).data.with_icons(self._catalog)

    def list(self, sort_by_updated: bool = False) -> list[SavedRecord]:
        if sort_by_updated:
            return sorted(self._records, key=lambda r: r.updated_at, reverse=True)
        return list(self._records)

    def delete(self, record_id: str) -> None:
        """Remove a record. Clearing any active-document reference is up to the caller."""
        self.get(record_id)
        self._commit([r for r in self._records if r.id != record_id])
        logger.info("Deleted diagram %s", record_id)

    def clear(self) -> None:
        self.substrate.remove(REGISTRY_KEY)
        self._records = []
        logger.info("Cleared saved diagram registry")

    # ── Last-opened slot ─────────────────────────────────────

    def set_last_opened(self, doc: DocumentData, record_id: str | None = None) -> None:
        """Remember ``doc`` for session restore. Raises QuotaExceeded."""
        snapshot = json.dumps(doc.stripped().to_dict(), ensure_ascii=False)
        previous = self.substrate.get(LAST_OPENED_DATA_KEY)
        self._write(LAST_OPENED_DATA_KEY, snapshot)
        try:
            if record_id is None:
                self.substrate.remove(LAST_OPENED_KEY)
            else:
                self._write(LAST_OPENED_KEY, record_id)
        except StorageError:
            self._restore(LAST_OPENED_DATA_KEY, previous)
            raise
        logger.debug("Updated last-opened snapshot (record=%s, %d bytes)", record_id, len(snapshot))

    def get_last_opened(self) -> DocumentData | None:
        raw = self.substrate.get(LAST_OPENED_DATA_KEY)
        if not raw:
            return None
        try:
            data: Any = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
        except ValueError as e:
            logger.error("Failed to restore last diagram: %s", e)
            return None
        return DocumentData.from_dict(data, self._catalog)

    def last_opened_id(self) -> str | None:
        return self.substrate.get(LAST_OPENED_KEY) or None

    def clear_last_opened(self) -> None:
        self.substrate.remove(LAST_OPENED_KEY)
        self.substrate.remove(LAST_OPENED_DATA_KEY)
