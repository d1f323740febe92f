"""Shared fixtures and in-process fakes for the host collaborators."""

from __future__ import annotations

from pathlib import Path

import pytest

from diagramkeep.config import AutoSaveConfig, DiagramKeepConfig, StorageConfig
from diagramkeep.core import DiagramKeep
from diagramkeep.document.icons import IconCatalog
from diagramkeep.exchange import OpenedFile
from diagramkeep.storage.store import PersistenceStore
from diagramkeep.storage.substrate import MemorySubstrate

AUTOSAVE_DELAY = 0.05


class FakePrompter:
    """Records notifications; answers confirmations from a queue (default yes)."""

    def __init__(self, answer: bool = True):
        self.answer = answer
        self.messages: list[str] = []
        self.questions: list[str] = []
        self.storage_views: list[str] = []

    def notify(self, text: str) -> None:
        self.messages.append(text)

    async def confirm(self, text: str) -> bool:
        self.questions.append(text)
        return self.answer

    def show_storage_manager(self, report, action: str) -> None:
        self.storage_views.append(action)


class FakeDialog:
    """File dialog returning canned content; ``None`` simulates cancel."""

    def __init__(self, content: str | None = None, save_path: Path | None = None):
        self.content = content
        self.save_path = save_path
        self.saved: list[bytes] = []
        self.suggested: list[str] = []

    async def open_file(self) -> OpenedFile | None:
        if self.content is None:
            return None
        return OpenedFile(path=Path("diagram.json"), content=self.content)

    async def save_file(self, content: bytes, suggested_name: str) -> Path | None:
        self.suggested.append(suggested_name)
        if self.save_path is None:
            return None
        self.saved.append(content)
        return self.save_path


@pytest.fixture
def catalog() -> IconCatalog:
    return IconCatalog.builtin()


@pytest.fixture
def substrate() -> MemorySubstrate:
    return MemorySubstrate(quota_bytes=256 * 1024)


@pytest.fixture
def store(substrate: MemorySubstrate, catalog: IconCatalog) -> PersistenceStore:
    return PersistenceStore(substrate, catalog)


@pytest.fixture
def config(tmp_path: Path) -> DiagramKeepConfig:
    return DiagramKeepConfig(
        storage=StorageConfig(backend="memory", path=tmp_path / "storage"),
        autosave=AutoSaveConfig(enabled=True, delay=AUTOSAVE_DELAY),
        pid_file=tmp_path / "diagramkeep.pid",
    )


@pytest.fixture
def prompter() -> FakePrompter:
    return FakePrompter()


@pytest.fixture
def dialog() -> FakeDialog:
    return FakeDialog()


@pytest.fixture
def app(config, store, catalog, prompter, dialog) -> DiagramKeep:
    keep = DiagramKeep(config, store, catalog, prompter, dialog=dialog)
    keep.start()
    return keep
