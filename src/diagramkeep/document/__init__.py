"""Document model, icon catalog and the reconciliation policy."""

from diagramkeep.document.icons import IconCatalog, load_catalog
from diagramkeep.document.model import DEFAULT_COLORS, DEFAULT_TITLE, DocumentData, SavedRecord
from diagramkeep.document.reconciler import reconcile

__all__ = [
    "DEFAULT_COLORS",
    "DEFAULT_TITLE",
    "DocumentData",
    "IconCatalog",
    "SavedRecord",
    "load_catalog",
    "reconcile",
]
