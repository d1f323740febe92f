"""Merge partial editor updates into the canonical document.

The editor reports model changes as partial dicts: sometimes the whole model,
sometimes only the fields that changed, occasionally without icons. The merge
is a policy merge, not a plain field union:

- present fields override the previous document, absent ones fall back to it
  and then to defaults, so required fields are never empty;
- icons always come from the live catalog, never from the update;
- ``fitToScreen`` is always true.

Malformed updates degrade through the fallback chain instead of raising.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from diagramkeep.document.icons import IconCatalog
from diagramkeep.document.model import DEFAULT_TITLE, KNOWN_KEYS, DocumentData, default_colors

logger = logging.getLogger(__name__)


def _pick_title(incoming: Mapping[str, Any], previous: DocumentData | None, fallback: str) -> str:
    for candidate in (incoming.get("title"), previous.title if previous else None, fallback):
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return DEFAULT_TITLE


def _pick_colors(incoming: Mapping[str, Any], previous: DocumentData | None) -> list:
    colors = incoming.get("colors")
    if isinstance(colors, list) and colors:
        return copy.deepcopy(colors)
    if previous is not None and previous.colors:
        return copy.deepcopy(previous.colors)
    return default_colors()


def _pick_list(incoming: Mapping[str, Any], key: str, previous: DocumentData | None) -> list:
    # An explicit empty list is a real update (everything deleted), not "absent".
    value = incoming.get(key)
    if isinstance(value, list):
        return copy.deepcopy(value)
    if value is not None:
        logger.debug("Ignoring malformed '%s' in model update (%s)", key, type(value).__name__)
    if previous is not None:
        return copy.deepcopy(getattr(previous, key))
    return []


def reconcile(
    previous: DocumentData | None,
    incoming: Mapping[str, Any] | None,
    fallback_title: str,
    catalog: IconCatalog,
) -> DocumentData:
    """Return the complete document resulting from applying ``incoming`` to ``previous``."""
    if not isinstance(incoming, Mapping):
        if incoming is not None:
            logger.debug("Model update is not a mapping (%s), keeping previous state",
                         type(incoming).__name__)
        incoming = {}

    extra = dict(previous.extra) if previous is not None else {}
    extra.update({k: copy.deepcopy(v) for k, v in incoming.items() if k not in KNOWN_KEYS})

    return DocumentData(
        title=_pick_title(incoming, previous, fallback_title),
        icons=catalog,
        colors=_pick_colors(incoming, previous),
        items=_pick_list(incoming, "items", previous),
        views=_pick_list(incoming, "views", previous),
        fit_to_screen=True,
        extra=extra,
    )
