"""File export/import — the boundary to the host's file dialogs.

Exported files are self-contained: they carry the full icon catalog so other
tools can render them. Imports go through the same completeness policy as
editor updates, so hand-written or older files load without crashing.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Protocol, runtime_checkable

from diagramkeep.document.icons import IconCatalog
from diagramkeep.document.model import DocumentData
from diagramkeep.errors import ParseError

logger = logging.getLogger(__name__)

EXPORT_TITLE = "Exported Diagram"
IMPORT_TITLE = "Imported Diagram"

# Path prompt: async (prompt, default) -> path string, or None when cancelled
PathPrompt = Callable[[str, "str | None"], Awaitable["str | None"]]


@dataclass
class OpenedFile:
    """Result of a confirmed open dialog."""

    path: Path
    content: str


@runtime_checkable
class FileDialog(Protocol):
    """Host file-dialog collaborator. ``None`` means the user cancelled."""

    async def open_file(self) -> OpenedFile | None: ...

    async def save_file(self, content: bytes, suggested_name: str) -> Path | None: ...


def default_export_name(today: date | None = None) -> str:
    return f"diagram-{(today or date.today()).isoformat()}.json"


class FileExchange:
    """Stateless (de)serialisation of documents for file export and import."""

    def __init__(self, catalog: IconCatalog) -> None:
        self._catalog = catalog

    def export_document(self, doc: DocumentData, name: str | None = None) -> bytes:
        """Serialise ``doc`` with the full icon catalog and ``fitToScreen`` set."""
        title = (name or "").strip() or doc.title or EXPORT_TITLE
        payload = {
            "title": title,
            "icons": self._catalog.to_list(),
            "colors": doc.colors,
            "items": doc.items,
            "views": doc.views,
            "fitToScreen": True,
        }
        return json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")

    def import_document(self, content: bytes | str) -> DocumentData:
        """Parse an exported (or hand-written) file. Raises ParseError."""
        try:
            text = content.decode("utf-8") if isinstance(content, bytes) else content
            data = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseError(f"Invalid JSON file: {e}") from e
        if not isinstance(data, dict):
            raise ParseError(f"Invalid diagram file: expected an object, got {type(data).__name__}")

        doc = DocumentData.from_dict(data, self._catalog)
        title = data.get("title")
        if not (isinstance(title, str) and title.strip()):
            doc.title = IMPORT_TITLE
        logger.info("Imported diagram '%s' (%d items)", doc.title, len(doc.items))
        return doc


class FilesystemDialog:
    """File dialog backed by a path supplier (a prompt, a CLI argument, ...).

    The supplier returns a path string, or None/empty when the user backs out.
    """

    def __init__(self, ask_path: PathPrompt, directory: Path | None = None) -> None:
        self._ask_path = ask_path
        self._directory = directory or Path.cwd()

    def _resolve(self, raw: str) -> Path:
        path = Path(raw).expanduser()
        return path if path.is_absolute() else self._directory / path

    async def open_file(self) -> OpenedFile | None:
        raw = await self._ask_path("Open file: ", None)
        if not raw:
            return None
        path = self._resolve(raw)
        return OpenedFile(path=path, content=path.read_text(encoding="utf-8"))

    async def save_file(self, content: bytes, suggested_name: str) -> Path | None:
        raw = await self._ask_path(f"Save as [{suggested_name}]: ", suggested_name)
        if raw is None:
            return None
        path = self._resolve(raw or suggested_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        logger.info("Exported diagram to %s", path)
        return path
