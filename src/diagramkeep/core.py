"""DiagramKeep controller — the single owner of the working session.

Responsibilities:
1. Reconcile partial editor updates into the session document
2. Explicit user actions: save, quick save, load, new, delete
3. File export/import through the host's file dialog
4. Debounced auto-save of the active record
5. Route storage-quota failures to the storage manager, once per attempt
6. Restore the last-opened document at startup

User actions are serialised by one lock. Model updates are synchronous and
therefore never interleave with a persistence write.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from diagramkeep.document.model import DocumentData, SavedRecord, utc_timestamp
from diagramkeep.document.reconciler import reconcile
from diagramkeep.errors import ParseError, QuotaExceeded, StorageError
from diagramkeep.events import EditorEvent, EventBus, Subscription
from diagramkeep.exchange import FileExchange, default_export_name
from diagramkeep.scheduler.autosave import AutoSaveScheduler
from diagramkeep.session import Session
from diagramkeep.storage.manager import StorageManager, StorageReport
from diagramkeep.storage.quota import QuotaGuard

if TYPE_CHECKING:
    from diagramkeep.config import DiagramKeepConfig
    from diagramkeep.connectors.base import Prompter
    from diagramkeep.document.icons import IconCatalog
    from diagramkeep.exchange import FileDialog
    from diagramkeep.storage.store import PersistenceStore

logger = logging.getLogger(__name__)

FALLBACK_TITLE = "Untitled"


class DiagramKeep:
    """Core controller — routes editor and user events to the persistence layer."""

    def __init__(
        self,
        config: DiagramKeepConfig,
        store: PersistenceStore,
        catalog: IconCatalog,
        prompter: Prompter,
        dialog: FileDialog | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.catalog = catalog
        self.session = Session(catalog, DocumentData.empty(catalog))
        self.exchange = FileExchange(catalog)
        self.storage_manager = StorageManager(store)
        self.guard = QuotaGuard(self._on_quota_exceeded)
        self.scheduler = AutoSaveScheduler(
            self.session,
            self._auto_save,
            delay=config.autosave.delay,
            enabled=config.autosave.enabled,
        )
        self.bus = bus or EventBus()
        self.prompter = prompter
        self.dialog = dialog
        self._lock = asyncio.Lock()
        self._subscriptions: list[Subscription] = []

    # ── Session restore ──────────────────────────────────────

    def restore(self) -> bool:
        """Reopen the last-opened document, if both pointer and snapshot survive."""
        record_id = self.store.last_opened_id()
        document = self.store.get_last_opened()
        if not record_id or document is None:
            return False

        self.session.replace_document(document)
        record = self.store.find(record_id)
        if record is not None:
            self.session.active_record = record
            self.session.diagram_name = record.name
        logger.info("Restored last diagram '%s'", self.session.display_name)
        return True

    # ── Editor updates ───────────────────────────────────────

    def handle_model_update(self, partial: Any) -> DocumentData:
        """Merge a (possibly partial) model update from the editor."""
        self.session.document = reconcile(
            self.session.document,
            partial,
            self.session.diagram_name or FALLBACK_TITLE,
            self.catalog,
        )
        self.session.mark_dirty()
        self.scheduler.notify_change()
        return self.session.document

    # ── Persistence helpers ──────────────────────────────────

    def _on_quota_exceeded(self, action: str, error: QuotaExceeded) -> None:
        self.prompter.show_storage_manager(self.storage_manager.report(), action)

    def _persist_record(self, record: SavedRecord, action: str) -> bool:
        """Write ``record`` and the last-opened slot in one guarded attempt."""

        def write() -> None:
            saved = self.store.save(record)
            self.session.active_record = saved
            self.store.set_last_opened(saved.data, saved.id)

        try:
            ok = self.guard.run(action, write)
        except StorageError as e:
            logger.error("%s failed: %s", action, e)
            self.prompter.notify(f"Failed to save diagram: {e}")
            return False
        if ok:
            self.session.mark_saved(datetime.now(timezone.utc))
        return ok

    def _snapshot(self, title: str) -> DocumentData:
        return replace(self.session.document.stripped(), title=title, fit_to_screen=True)

    def _auto_save(self) -> bool:
        record = self.session.active_record
        if record is None:
            return False
        updated = record.with_data(self._snapshot(self.session.diagram_name or record.name))
        ok = self._persist_record(updated, "auto-save")
        if ok:
            logger.info("Auto-saved '%s'", record.name)
        return ok

    def _resolve(self, ref: str) -> SavedRecord | None:
        """Find a saved diagram by id, then by name."""
        record = self.store.find(ref)
        if record is not None:
            return record
        for candidate in self.store.list():
            if candidate.name == ref:
                return candidate
        return None

    # ── Named saves ──────────────────────────────────────────

    async def save_diagram(self, name: str) -> SavedRecord | None:
        async with self._lock:
            return self._save(name)

    def _save(self, name: str) -> SavedRecord | None:
        name = name.strip()
        if not name:
            self.prompter.notify("Please enter a diagram name")
            return None

        now = utc_timestamp()
        current = self.session.active_record
        record = SavedRecord(
            id=current.id if current else self.store.next_id(),
            name=name,
            data=self._snapshot(name),
            created_at=current.created_at if current else now,
            updated_at=now,
        )
        self.session.diagram_name = name
        if not self._persist_record(record, "save"):
            return None
        self.scheduler.cancel()
        return self.session.active_record

    async def quick_save(self) -> SavedRecord | None:
        """Save the active diagram under its current name, if it has changes."""
        async with self._lock:
            record = self.session.active_record
            if record is None or not self.session.has_unsaved_changes:
                return None
            return self._save(self.session.diagram_name or record.name)

    async def load_diagram(self, ref: str) -> bool:
        async with self._lock:
            record = self._resolve(ref)
            if record is None:
                self.prompter.notify(f"No saved diagram named '{ref}'")
                return False
            if self.session.has_unsaved_changes and not await self.prompter.confirm(
                "You have unsaved changes. Continue loading?"
            ):
                return False

            self.scheduler.cancel()
            self.session.replace_document(record.data)
            self.session.active_record = record
            self.session.diagram_name = record.name
            self.session.has_unsaved_changes = False

            try:
                self.guard.run(
                    "load", lambda: self.store.set_last_opened(record.data, record.id)
                )
            except StorageError as e:
                logger.error("Failed to save last opened: %s", e)
            logger.info("Loaded diagram '%s'", record.name)
            return True

    async def new_diagram(self, _payload: Any = None) -> bool:
        async with self._lock:
            message = (
                "You have unsaved changes. Export your diagram first to save it. Continue?"
                if self.session.has_unsaved_changes
                else "Create a new diagram?"
            )
            if not await self.prompter.confirm(message):
                return False

            self.scheduler.cancel()
            self.session.replace_document(DocumentData.empty(self.catalog))
            self.session.active_record = None
            self.session.diagram_name = ""
            self.session.has_unsaved_changes = False
            try:
                self.store.clear_last_opened()
            except OSError as e:
                logger.error("Failed to clear last opened: %s", e)
            logger.info("Started a new diagram")
            return True

    async def delete_diagram(self, ref: str, confirm: bool = True) -> bool:
        async with self._lock:
            record = self._resolve(ref)
            if record is None:
                self.prompter.notify(f"No saved diagram named '{ref}'")
                return False
            if confirm and not await self.prompter.confirm(
                "Are you sure you want to delete this diagram?"
            ):
                return False

            try:
                if not self.guard.run("delete", lambda: self.store.delete(record.id)):
                    return False
            except StorageError as e:
                self.prompter.notify(f"Failed to delete diagram: {e}")
                return False

            active = self.session.active_record
            if active is not None and active.id == record.id:
                self.scheduler.cancel()
                self.session.active_record = None
                self.session.diagram_name = ""
            return True

    def list_diagrams(self, sort_by_updated: bool = False) -> list[SavedRecord]:
        return self.store.list(sort_by_updated=sort_by_updated)

    # ── File export / import ─────────────────────────────────

    async def open_file(self, _payload: Any = None) -> bool:
        async with self._lock:
            if self.dialog is None:
                self.prompter.notify("No file dialog available")
                return False
            try:
                opened = await self.dialog.open_file()
            except OSError as e:
                self.prompter.notify(f"Failed to open file: {e}")
                return False
            if opened is None:
                return False

            try:
                document = self.exchange.import_document(opened.content)
            except ParseError as e:
                logger.warning("Import of %s failed: %s", opened.path, e)
                self.prompter.notify("Invalid JSON file. Please check the file format.")
                return False

            if self.session.has_unsaved_changes and not await self.prompter.confirm(
                "You have unsaved changes. Continue opening?"
            ):
                return False

            self.scheduler.cancel()
            self.session.replace_document(document)
            # The file is a new working copy; auto-save must not overwrite the old record.
            self.session.active_record = None
            self.session.diagram_name = document.title
            self.session.mark_dirty()
            self.prompter.notify(f'Diagram "{document.title}" loaded successfully!')
            return True

    async def save_file(self, _payload: Any = None) -> Path | None:
        async with self._lock:
            if self.dialog is None:
                self.prompter.notify("No file dialog available")
                return None
            exported = self.session.document
            content = self.exchange.export_document(exported, self.session.diagram_name)
            try:
                path = await self.dialog.save_file(content, default_export_name())
            except OSError as e:
                self.prompter.notify(f"Failed to save file: {e}")
                return None
            if path is None:
                return None

            self.prompter.notify(f"Diagram saved to {path}")
            # Edits that arrived while the dialog was open are not in the file.
            if self.session.document is exported:
                self.scheduler.cancel()
                self.session.has_unsaved_changes = False
            return path

    # ── Storage manager ──────────────────────────────────────

    def storage_report(self) -> StorageReport:
        return self.storage_manager.report()

    async def clear_storage(self) -> bool:
        async with self._lock:
            if not await self.prompter.confirm(
                "Delete ALL saved diagrams? Export anything you want to keep first."
            ):
                return False
            self.storage_manager.clear_all()
            self.scheduler.cancel()
            self.session.active_record = None
            return True

    def status(self) -> dict[str, Any]:
        status = self.session.status()
        status["autosave"] = self.scheduler.state.value
        status["savedDiagrams"] = len(self.store.list())
        return status

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self) -> None:
        """Subscribe to editor and menu events."""
        if self._subscriptions:
            return
        self._subscriptions = [
            self.bus.subscribe(EditorEvent.MODEL_UPDATED, self.handle_model_update),
            self.bus.subscribe(EditorEvent.MENU_NEW_DIAGRAM, self.new_diagram),
            self.bus.subscribe(EditorEvent.MENU_OPEN_FILE, self.open_file),
            self.bus.subscribe(EditorEvent.MENU_SAVE_FILE, self.save_file),
        ]
        logger.info("Session started (%d saved diagrams)", len(self.store.list()))

    async def stop(self) -> None:
        """Tear down subscriptions and cancel any pending auto-save."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        await self.scheduler.close()
        if self.session.has_unsaved_changes:
            logger.warning("Stopping with unsaved changes in '%s'", self.session.display_name)
            self.prompter.notify("You have unsaved changes. Export your diagram to keep them.")
