"""Session context — the working document and its persistence bookkeeping.

One Session exists per process and is owned by the controller. Components
receive it explicitly instead of reaching for module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from diagramkeep.document.icons import IconCatalog
from diagramkeep.document.model import DocumentData, SavedRecord


@dataclass
class Session:
    """Mutable state of the running editor session."""

    catalog: IconCatalog
    document: DocumentData
    active_record: SavedRecord | None = None
    diagram_name: str = ""
    has_unsaved_changes: bool = False
    last_auto_save: datetime | None = None
    render_key: int = 0

    @property
    def display_name(self) -> str:
        if self.active_record is not None:
            return self.active_record.name
        return self.diagram_name or self.document.title

    def mark_dirty(self) -> None:
        self.has_unsaved_changes = True

    def mark_saved(self, at: datetime) -> None:
        self.has_unsaved_changes = False
        self.last_auto_save = at

    def replace_document(self, document: DocumentData) -> None:
        """Swap in a whole new document; the editor re-initialises on the new render key."""
        self.document = document.with_icons(self.catalog)
        self.render_key += 1

    def editor_payload(self) -> dict[str, Any]:
        return {"renderKey": self.render_key, "document": self.document.to_dict()}

    def status(self) -> dict[str, Any]:
        return {
            "name": self.display_name,
            "activeRecordId": self.active_record.id if self.active_record else None,
            "hasUnsavedChanges": self.has_unsaved_changes,
            "lastAutoSave": self.last_auto_save.isoformat() if self.last_auto_save else None,
            "renderKey": self.render_key,
        }
