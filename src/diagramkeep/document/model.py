"""Document and saved-record data model.

``DocumentData`` is the canonical, always-complete representation of the
working diagram. ``items`` and ``views`` belong to the editor and are carried
through untouched. The icon catalog is attached only to documents that go to
the editor or to an exported file; documents written to storage carry none.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from diagramkeep.document.icons import IconCatalog

DEFAULT_TITLE = "Untitled Diagram"

DEFAULT_COLORS: tuple[dict[str, str], ...] = (
    {"id": "blue", "value": "#0066cc"},
    {"id": "green", "value": "#00aa00"},
    {"id": "red", "value": "#cc0000"},
    {"id": "orange", "value": "#ff9900"},
    {"id": "purple", "value": "#9900cc"},
    {"id": "black", "value": "#000000"},
    {"id": "gray", "value": "#666666"},
)

# Top-level wire keys with a dedicated field; anything else lands in ``extra``.
KNOWN_KEYS = frozenset({"title", "icons", "colors", "items", "views", "fitToScreen"})


def default_colors() -> list[dict[str, str]]:
    return [dict(color) for color in DEFAULT_COLORS]


def utc_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. ``2026-10-18T09:30:00.123Z``."""
    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


@dataclass
class DocumentData:
    """The working diagram."""

    title: str = DEFAULT_TITLE
    icons: IconCatalog | None = None
    colors: list[dict[str, Any]] = field(default_factory=default_colors)
    items: list[Any] = field(default_factory=list)
    views: list[Any] = field(default_factory=list)
    fit_to_screen: bool = True
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls, catalog: IconCatalog | None = None) -> DocumentData:
        return cls(icons=catalog)

    @property
    def has_icons(self) -> bool:
        return self.icons is not None and len(self.icons) > 0

    def stripped(self) -> DocumentData:
        """Copy without the icon catalog, the form written to storage."""
        return replace(self, icons=None)

    def with_icons(self, catalog: IconCatalog) -> DocumentData:
        return replace(self, icons=catalog)

    def content_equals(self, other: DocumentData) -> bool:
        """Compare everything except the icon catalog."""
        return self.stripped() == other.stripped()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(copy.deepcopy(self.extra))
        data.update(
            {
                "title": self.title,
                "icons": self.icons.to_list() if self.icons is not None else [],
                "colors": copy.deepcopy(self.colors),
                "items": copy.deepcopy(self.items),
                "views": copy.deepcopy(self.views),
                "fitToScreen": self.fit_to_screen,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], catalog: IconCatalog | None = None) -> DocumentData:
        """Rebuild a document from its wire form. Icons in ``data`` are ignored."""
        title = data.get("title")
        colors = data.get("colors")
        items = data.get("items")
        views = data.get("views")
        return cls(
            title=title if isinstance(title, str) and title.strip() else DEFAULT_TITLE,
            icons=catalog,
            colors=copy.deepcopy(colors) if isinstance(colors, list) and colors else default_colors(),
            items=copy.deepcopy(items) if isinstance(items, list) else [],
            views=copy.deepcopy(views) if isinstance(views, list) else [],
            fit_to_screen=data.get("fitToScreen") is not False,
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in KNOWN_KEYS},
        )


@dataclass(frozen=True)
class SavedRecord:
    """One entry in the named registry. ``id`` and ``created_at`` never change."""

    id: str
    name: str
    data: DocumentData
    created_at: str
    updated_at: str

    def __post_init__(self) -> None:
        if self.data.icons is not None:
            object.__setattr__(self, "data", self.data.stripped())

    def with_data(self, data: DocumentData, updated_at: str | None = None) -> SavedRecord:
        return replace(self, data=data.stripped(), updated_at=updated_at or utc_timestamp())

    def renamed(self, name: str, updated_at: str | None = None) -> SavedRecord:
        return replace(self, name=name, updated_at=updated_at or utc_timestamp())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "data": self.data.to_dict(),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SavedRecord:
        """Rebuild a registry entry. Raises ValueError when the entry is malformed."""
        if not isinstance(data, dict):
            raise ValueError(f"registry entry must be an object, got {type(data).__name__}")
        document = data.get("data") or {}
        if not isinstance(document, dict):
            raise ValueError(f"diagram data must be an object, got {type(document).__name__}")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            data=DocumentData.from_dict(document),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", data.get("createdAt", "")),
        )
