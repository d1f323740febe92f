"""Tests for the DiagramKeep controller: end-to-end session scenarios."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from conftest import AUTOSAVE_DELAY, FakeDialog, FakePrompter
from diagramkeep.core import DiagramKeep
from diagramkeep.document.model import DEFAULT_COLORS, DocumentData
from diagramkeep.events import EditorEvent
from diagramkeep.scheduler.autosave import AutoSaveState
from diagramkeep.storage.store import PersistenceStore
from diagramkeep.storage.substrate import CapacityError, MemorySubstrate

A = {"id": "A", "icon": "server"}
B = {"id": "B", "icon": "cube"}
BLUE = [{"id": "blue", "value": "#0066cc"}]


async def settle() -> None:
    await asyncio.sleep(AUTOSAVE_DELAY * 4)


class QuotaAfterSetup(MemorySubstrate):
    """Substrate that starts rejecting every write once ``full`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.full = False

    def set(self, key: str, value: str) -> None:
        if self.full:
            raise CapacityError(key, len(value), self.quota_bytes)
        super().set(key, value)


class TestModelUpdates:
    def test_update_marks_dirty(self, app: DiagramKeep):
        doc = app.handle_model_update({"items": [A]})
        assert app.session.has_unsaved_changes is True
        assert doc.items == [A]
        assert doc.has_icons
        assert doc.fit_to_screen is True

    @pytest.mark.asyncio
    async def test_update_via_event_bus(self, app: DiagramKeep):
        await app.bus.publish(EditorEvent.MODEL_UPDATED, {"views": [{"id": "v"}]})
        assert app.session.document.views == [{"id": "v"}]
        assert app.session.has_unsaved_changes is True

    def test_title_falls_back_to_diagram_name(self, app: DiagramKeep):
        app.session.diagram_name = "Named"
        app.session.document.title = ""
        assert app.handle_model_update({}).title == "Named"


class TestSaveLoad:
    @pytest.mark.asyncio
    async def test_save_load_round_trip(self, app: DiagramKeep, catalog):
        app.handle_model_update({"items": [A, B], "colors": BLUE})
        record = await app.save_diagram("Diagram1")
        assert record is not None
        assert app.session.has_unsaved_changes is False
        assert app.session.last_auto_save is not None

        assert await app.new_diagram() is True
        assert app.session.document.items == []
        assert app.session.active_record is None

        assert await app.load_diagram("Diagram1") is True
        doc = app.session.document
        assert doc.items == [A, B]
        assert doc.colors == BLUE
        assert doc.icons == catalog
        assert doc.title == "Diagram1"
        assert app.session.active_record.id == record.id

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, app: DiagramKeep, prompter: FakePrompter):
        assert await app.save_diagram("   ") is None
        assert app.store.list() == []
        assert prompter.messages == ["Please enter a diagram name"]

    @pytest.mark.asyncio
    async def test_resave_keeps_id_and_created_at(self, app: DiagramKeep):
        first = await app.save_diagram("D")
        app.handle_model_update({"items": [A]})
        second = await app.save_diagram("D renamed")
        assert second.id == first.id
        assert second.created_at == first.created_at
        assert [r.name for r in app.store.list()] == ["D renamed"]

    @pytest.mark.asyncio
    async def test_save_updates_last_opened(self, app: DiagramKeep):
        app.handle_model_update({"items": [A]})
        record = await app.save_diagram("D")
        assert app.store.last_opened_id() == record.id
        assert app.store.get_last_opened().items == [A]

    @pytest.mark.asyncio
    async def test_load_asks_when_dirty(self, app: DiagramKeep, prompter: FakePrompter):
        await app.save_diagram("D")
        app.handle_model_update({"items": [A]})
        prompter.answer = False
        assert await app.load_diagram("D") is False
        assert app.session.document.items == [A]
        assert prompter.questions == ["You have unsaved changes. Continue loading?"]

    @pytest.mark.asyncio
    async def test_load_bumps_render_key(self, app: DiagramKeep):
        await app.save_diagram("D")
        key = app.session.render_key
        await app.load_diagram("D")
        assert app.session.render_key == key + 1

    @pytest.mark.asyncio
    async def test_load_unknown(self, app: DiagramKeep, prompter: FakePrompter):
        assert await app.load_diagram("missing") is False
        assert "missing" in prompter.messages[0]

    @pytest.mark.asyncio
    async def test_quick_save(self, app: DiagramKeep):
        assert await app.quick_save() is None  # nothing active
        await app.save_diagram("D")
        assert await app.quick_save() is None  # nothing changed
        app.handle_model_update({"items": [A]})
        record = await app.quick_save()
        assert record.name == "D"
        assert app.store.load(record.id).items == [A]


class TestNewAndDelete:
    @pytest.mark.asyncio
    async def test_new_always_confirms(self, app: DiagramKeep, prompter: FakePrompter):
        await app.new_diagram()
        app.handle_model_update({"items": [A]})
        await app.new_diagram()
        assert prompter.questions == [
            "Create a new diagram?",
            "You have unsaved changes. Export your diagram first to save it. Continue?",
        ]

    @pytest.mark.asyncio
    async def test_new_declined_keeps_document(self, app: DiagramKeep, prompter: FakePrompter):
        app.handle_model_update({"items": [A]})
        prompter.answer = False
        assert await app.new_diagram() is False
        assert app.session.document.items == [A]
        assert app.session.has_unsaved_changes is True

    @pytest.mark.asyncio
    async def test_new_clears_last_opened(self, app: DiagramKeep):
        await app.save_diagram("D")
        await app.new_diagram()
        assert app.store.get_last_opened() is None
        assert app.session.diagram_name == ""
        assert app.session.has_unsaved_changes is False

    @pytest.mark.asyncio
    async def test_delete_active_clears_reference(self, app: DiagramKeep):
        record = await app.save_diagram("D")
        assert await app.delete_diagram(record.id) is True
        assert app.store.list() == []
        assert app.session.active_record is None
        assert app.session.diagram_name == ""

    @pytest.mark.asyncio
    async def test_delete_other_keeps_active(self, app: DiagramKeep):
        other = await app.save_diagram("Other")
        await app.new_diagram()
        active = await app.save_diagram("Active")
        assert await app.delete_diagram("Other") is True
        assert app.session.active_record.id == active.id
        assert app.store.find(other.id) is None

    @pytest.mark.asyncio
    async def test_delete_declined(self, app: DiagramKeep, prompter: FakePrompter):
        await app.save_diagram("D")
        prompter.answer = False
        assert await app.delete_diagram("D") is False
        assert len(app.store.list()) == 1


class TestAutoSave:
    @pytest.mark.asyncio
    async def test_auto_save_updates_active_record(self, app: DiagramKeep):
        record = await app.save_diagram("D")
        stamp = app.session.last_auto_save
        for item in (A, B):
            app.handle_model_update({"items": [item]})
        assert app.scheduler.state is AutoSaveState.ARMED

        await settle()
        assert app.scheduler.saves == 1
        assert app.session.has_unsaved_changes is False
        assert app.session.last_auto_save > stamp
        assert app.store.load(record.id).items == [B]
        assert app.store.get_last_opened().items == [B]
        assert app.store.get(record.id).created_at == record.created_at

    @pytest.mark.asyncio
    async def test_no_auto_save_without_explicit_save(self, app: DiagramKeep):
        app.handle_model_update({"items": [A]})
        await settle()
        assert app.scheduler.saves == 0
        assert app.store.list() == []
        assert app.store.get_last_opened() is None
        assert app.session.has_unsaved_changes is True

    @pytest.mark.asyncio
    async def test_load_cancels_pending_auto_save(self, app: DiagramKeep):
        first = await app.save_diagram("First")
        await app.new_diagram()
        await app.save_diagram("Second")
        app.handle_model_update({"items": [A]})
        assert app.scheduler.state is AutoSaveState.ARMED

        await app.load_diagram(first.id)
        assert app.scheduler.state is AutoSaveState.IDLE
        await settle()
        assert app.scheduler.saves == 0
        assert app.store.load(first.id).items == []

    @pytest.mark.asyncio
    async def test_quota_exceeded_on_auto_save(self, config, catalog):
        substrate = QuotaAfterSetup()
        prompter = FakePrompter()
        app = DiagramKeep(config, PersistenceStore(substrate, catalog), catalog, prompter)
        app.start()

        record = await app.save_diagram("D")
        stamp = app.session.last_auto_save
        registry_before = [r.to_dict() for r in app.store.list()]

        substrate.full = True
        app.handle_model_update({"items": [A]})
        await settle()

        assert app.session.has_unsaved_changes is True
        assert app.session.last_auto_save == stamp
        assert prompter.storage_views == ["auto-save"]
        assert [r.to_dict() for r in app.store.list()] == registry_before
        assert app.store.load(record.id).items == []

        # A second failed attempt is reported again, once.
        app.handle_model_update({"items": [B]})
        await settle()
        assert prompter.storage_views == ["auto-save", "auto-save"]

    @pytest.mark.asyncio
    async def test_quota_exceeded_on_manual_save(self, config, catalog):
        substrate = QuotaAfterSetup()
        prompter = FakePrompter()
        app = DiagramKeep(config, PersistenceStore(substrate, catalog), catalog, prompter)
        substrate.full = True

        app.handle_model_update({"items": [A]})
        assert await app.save_diagram("D") is None
        assert prompter.storage_views == ["save"]
        assert app.store.list() == []
        assert app.session.active_record is None
        assert app.session.has_unsaved_changes is True


class TestFileExchange:
    @pytest.mark.asyncio
    async def test_import_with_missing_fields(self, app: DiagramKeep, dialog: FakeDialog, catalog):
        dialog.content = json.dumps({"items": [A]})
        assert await app.open_file() is True
        doc = app.session.document
        assert doc.items == [A]
        assert doc.views == []
        assert doc.colors == [dict(c) for c in DEFAULT_COLORS]
        assert doc.fit_to_screen is True
        assert doc.icons == catalog
        assert doc.title == "Imported Diagram"
        assert app.session.diagram_name == "Imported Diagram"
        assert app.session.has_unsaved_changes is True

    @pytest.mark.asyncio
    async def test_import_parse_error_leaves_session(self, app: DiagramKeep, dialog: FakeDialog,
                                                     prompter: FakePrompter):
        app.handle_model_update({"items": [A]})
        before = app.session.document
        key = app.session.render_key
        dialog.content = "{broken"
        assert await app.open_file() is False
        assert app.session.document is before
        assert app.session.render_key == key
        assert prompter.messages == ["Invalid JSON file. Please check the file format."]

    @pytest.mark.asyncio
    async def test_import_cancelled(self, app: DiagramKeep, prompter: FakePrompter):
        assert await app.open_file() is False
        assert prompter.messages == []

    @pytest.mark.asyncio
    async def test_import_detaches_active_record(self, app: DiagramKeep, dialog: FakeDialog):
        record = await app.save_diagram("D")
        dialog.content = json.dumps({"title": "Other", "items": [B]})
        await app.open_file()
        assert app.session.active_record is None
        await settle()
        assert app.store.load(record.id).items == []

    @pytest.mark.asyncio
    async def test_export(self, app: DiagramKeep, dialog: FakeDialog, prompter: FakePrompter,
                          tmp_path: Path, catalog):
        app.handle_model_update({"items": [A]})
        dialog.save_path = tmp_path / "out.json"
        path = await app.save_file()
        assert path == tmp_path / "out.json"
        data = json.loads(dialog.saved[0])
        assert data["items"] == [A]
        assert len(data["icons"]) == len(catalog)
        assert dialog.suggested[0].startswith("diagram-")
        assert app.session.has_unsaved_changes is False
        assert prompter.messages == [f"Diagram saved to {path}"]

    @pytest.mark.asyncio
    async def test_edit_during_export_stays_dirty(self, app: DiagramKeep, tmp_path: Path):
        class EditingDialog(FakeDialog):
            async def save_file(self, content: bytes, suggested_name: str) -> Path | None:
                app.handle_model_update({"items": [B]})
                return await super().save_file(content, suggested_name)

        app.dialog = EditingDialog(save_path=tmp_path / "out.json")
        app.handle_model_update({"items": [A]})
        assert await app.save_file() == tmp_path / "out.json"
        assert json.loads(app.dialog.saved[0])["items"] == [A]
        assert app.session.document.items == [B]
        assert app.session.has_unsaved_changes is True

    @pytest.mark.asyncio
    async def test_export_cancelled_keeps_dirty(self, app: DiagramKeep):
        app.handle_model_update({"items": [A]})
        assert await app.save_file() is None
        assert app.session.has_unsaved_changes is True

    @pytest.mark.asyncio
    async def test_menu_events(self, app: DiagramKeep, dialog: FakeDialog):
        dialog.content = json.dumps({"title": "Menu", "items": [A]})
        await app.bus.publish(EditorEvent.MENU_OPEN_FILE)
        assert app.session.document.title == "Menu"
        await app.bus.publish(EditorEvent.MENU_NEW_DIAGRAM)
        assert app.session.document.items == []


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_restore_last_opened(self, app: DiagramKeep, config, store, catalog):
        app.handle_model_update({"items": [A, B]})
        record = await app.save_diagram("D")

        fresh = DiagramKeep(config, PersistenceStore(store.substrate, catalog), catalog, FakePrompter())
        assert fresh.restore() is True
        assert fresh.session.document.items == [A, B]
        assert fresh.session.document.icons == catalog
        assert fresh.session.active_record.id == record.id
        assert fresh.session.diagram_name == "D"

    def test_restore_nothing(self, config, store, catalog):
        fresh = DiagramKeep(config, store, catalog, FakePrompter())
        assert fresh.restore() is False
        assert fresh.session.document.content_equals(DocumentData.empty())

    @pytest.mark.asyncio
    async def test_stop_unsubscribes_and_warns(self, app: DiagramKeep, prompter: FakePrompter):
        await app.save_diagram("D")
        app.handle_model_update({"items": [A]})
        await app.stop()
        assert app.bus.subscriber_count(EditorEvent.MODEL_UPDATED) == 0
        assert app.scheduler.state is AutoSaveState.IDLE
        assert prompter.messages[-1].startswith("You have unsaved changes")

        await app.bus.publish(EditorEvent.MODEL_UPDATED, {"items": [B]})
        assert app.session.document.items == [A]

    def test_session_starts_with_empty_document(self, app: DiagramKeep, catalog):
        assert app.session.document.content_equals(DocumentData.empty())
        assert app.session.document.icons == catalog
        assert app.session.render_key == 0

    def test_status(self, app: DiagramKeep):
        status = app.status()
        assert status["name"] == "Untitled Diagram"
        assert status["hasUnsavedChanges"] is False
        assert status["autosave"] == "idle"
        assert status["savedDiagrams"] == 0
