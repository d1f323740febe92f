"""QuotaGuard — one remediation path for every storage write that runs out of space."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from diagramkeep.errors import QuotaExceeded

logger = logging.getLogger(__name__)

# Remediation callback: (action, error) -> None
QuotaHandler = Callable[[str, QuotaExceeded], None]


class QuotaGuard:
    """Wrap persistence writes; route capacity failures to the storage manager.

    A failed write is reported exactly once per attempt. The guard never
    retries and never deletes user data to make room.
    """

    def __init__(self, on_exceeded: QuotaHandler) -> None:
        self._on_exceeded = on_exceeded
        self.failures = 0

    def run(self, action: str, operation: Callable[[], Any]) -> bool:
        """Run ``operation``; return False if it hit the storage quota."""
        try:
            operation()
        except QuotaExceeded as e:
            self.failures += 1
            logger.warning("%s failed: %s", action, e)
            self._on_exceeded(action, e)
            return False
        return True
