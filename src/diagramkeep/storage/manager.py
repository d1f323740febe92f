"""Storage manager — the recovery view opened when the quota is exhausted.

Lists what occupies the substrate so the user can decide what to delete.
Nothing here runs automatically.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from diagramkeep.storage.store import LAST_OPENED_DATA_KEY, LAST_OPENED_KEY, PersistenceStore

logger = logging.getLogger(__name__)


@dataclass
class StorageEntry:
    record_id: str
    name: str
    updated_at: str
    size_bytes: int


@dataclass
class StorageReport:
    quota_bytes: int
    used_bytes: int
    last_opened_bytes: int = 0
    entries: list[StorageEntry] = field(default_factory=list)

    @property
    def free_bytes(self) -> int:
        return max(self.quota_bytes - self.used_bytes, 0)

    @property
    def percent_used(self) -> float:
        if self.quota_bytes <= 0:
            return 100.0
        return min(100.0, self.used_bytes * 100.0 / self.quota_bytes)

    def format(self) -> str:
        lines = [
            f"Storage: {_human(self.used_bytes)} of {_human(self.quota_bytes)} used "
            f"({self.percent_used:.1f}%)",
        ]
        if self.last_opened_bytes:
            lines.append(f"  last-opened snapshot: {_human(self.last_opened_bytes)}")
        if not self.entries:
            lines.append("  no saved diagrams")
        for entry in self.entries:
            lines.append(
                f"  {entry.record_id}  {entry.name}  {_human(entry.size_bytes)}"
                f"  (updated {entry.updated_at})"
            )
        return "\n".join(lines)


def _human(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


class StorageManager:
    """Read-mostly view over a PersistenceStore's substrate usage."""

    def __init__(self, store: PersistenceStore) -> None:
        self._store = store

    def report(self) -> StorageReport:
        substrate = self._store.substrate
        entries = [
            StorageEntry(
                record_id=record.id,
                name=record.name,
                updated_at=record.updated_at,
                size_bytes=len(json.dumps(record.to_dict(), ensure_ascii=False).encode("utf-8")),
            )
            for record in self._store.list()
        ]
        entries.sort(key=lambda e: e.size_bytes, reverse=True)
        last_opened = substrate.size_of(LAST_OPENED_DATA_KEY) + substrate.size_of(LAST_OPENED_KEY)
        return StorageReport(
            quota_bytes=substrate.quota_bytes,
            used_bytes=substrate.used_bytes(),
            last_opened_bytes=last_opened,
            entries=entries,
        )

    def clear_last_opened(self) -> None:
        self._store.clear_last_opened()
        logger.info("Cleared last-opened snapshot")

    def clear_all(self) -> None:
        """Remove every saved diagram and the last-opened snapshot."""
        self._store.clear()
        self._store.clear_last_opened()
        logger.info("Cleared all diagram storage")
