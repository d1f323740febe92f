"""Icon catalog — the fixed set of shapes the editor can place.

The catalog is assembled once at startup from a fixed set of shape
collections and injected wherever a document is handed to the editor or
exported. It is never written to storage.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from diagramkeep.config import IconConfig

logger = logging.getLogger(__name__)

_BUILTIN_COLLECTION_ID = "isoflow"
_BUILTIN_BASE_URL = "https://isoflow-public.s3.eu-west-2.amazonaws.com/isopacks/isoflow"
_BUILTIN_SHAPES = [
    ("block", "Block"),
    ("cache", "Cache"),
    ("cardterminal", "Card terminal"),
    ("cloud", "Cloud"),
    ("cronjob", "Cronjob"),
    ("cube", "Cube"),
    ("desktop", "Desktop"),
    ("diamond", "Diamond"),
    ("dns", "DNS"),
    ("document", "Document"),
    ("firewall", "Firewall"),
    ("function-module", "Function"),
    ("image", "Image"),
    ("laptop", "Laptop"),
    ("loadbalancer", "Load balancer"),
    ("lock", "Lock"),
    ("mail", "Mail"),
    ("mobiledevice", "Mobile device"),
    ("office", "Office"),
    ("piechart", "Pie chart"),
    ("printer", "Printer"),
    ("pyramid", "Pyramid"),
    ("queue", "Queue"),
    ("router", "Router"),
    ("server", "Server"),
    ("speech", "Speech"),
    ("sphere", "Sphere"),
    ("storage", "Storage"),
    ("switch-module", "Switch"),
    ("tower", "Tower"),
    ("truck", "Truck"),
    ("user", "User"),
    ("vm", "Virtual machine"),
]


def builtin_collections() -> list[dict[str, Any]]:
    """The core shape collection bundled with the package."""
    return [
        {
            "id": _BUILTIN_COLLECTION_ID,
            "name": "Isoflow",
            "icons": [
                {
                    "id": icon_id,
                    "name": name,
                    "url": f"{_BUILTIN_BASE_URL}/{icon_id}.svg",
                    "isIsometric": True,
                }
                for icon_id, name in _BUILTIN_SHAPES
            ],
        }
    ]


def flatten_collections(collections: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Merge shape collections into one icon list, tagging each icon with its collection."""
    icons: list[dict[str, Any]] = []
    for collection in collections:
        collection_id = collection.get("id", "")
        for icon in collection.get("icons", []):
            icons.append({**icon, "collection": collection_id})
    return icons


class IconCatalog:
    """Immutable, non-empty sequence of icon definitions."""

    def __init__(self, icons: Iterable[Mapping[str, Any]]) -> None:
        self._icons = tuple(MappingProxyType(dict(icon)) for icon in icons)
        if not self._icons:
            raise ValueError("Icon catalog must contain at least one icon")

    @classmethod
    def from_collections(cls, collections: Iterable[Mapping[str, Any]]) -> IconCatalog:
        return cls(flatten_collections(collections))

    @classmethod
    def builtin(cls) -> IconCatalog:
        return cls.from_collections(builtin_collections())

    @classmethod
    def from_files(cls, paths: Iterable[Path]) -> IconCatalog:
        """Load collection JSON files (``{"id": ..., "icons": [...]}``)."""
        collections = []
        for path in paths:
            collections.append(json.loads(Path(path).read_text(encoding="utf-8")))
            logger.debug("Loaded icon collection from %s", path)
        return cls.from_collections(collections)

    def __len__(self) -> int:
        return len(self._icons)

    def __iter__(self) -> Iterator[Mapping[str, Any]]:
        return iter(self._icons)

    def __contains__(self, icon_id: object) -> bool:
        return any(icon.get("id") == icon_id for icon in self._icons)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IconCatalog):
            return NotImplemented
        return self.to_list() == other.to_list()

    def __hash__(self) -> int:
        return hash(tuple(icon.get("id") for icon in self._icons))

    def __repr__(self) -> str:
        return f"IconCatalog({len(self._icons)} icons)"

    @property
    def collections(self) -> list[str]:
        seen: list[str] = []
        for icon in self._icons:
            collection = icon.get("collection", "")
            if collection not in seen:
                seen.append(collection)
        return seen

    def to_list(self) -> list[dict[str, Any]]:
        """Plain-dict copy for serialisation."""
        return [dict(icon) for icon in self._icons]


def load_catalog(config: IconConfig) -> IconCatalog:
    """Assemble the process-wide catalog from configured collection files."""
    if config.collections:
        catalog = IconCatalog.from_files(config.collections)
    else:
        catalog = IconCatalog.builtin()
    logger.info(
        "Icon catalog ready: %d icons from %s", len(catalog), ", ".join(catalog.collections)
    )
    return catalog
