"""Prompter protocol and the headless implementation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from diagramkeep.storage.manager import StorageReport

logger = logging.getLogger(__name__)


@runtime_checkable
class Prompter(Protocol):
    """User-facing surface: alerts, confirmations and the storage manager."""

    def notify(self, text: str) -> None:
        """Show a message to the user."""
        ...

    async def confirm(self, text: str) -> bool:
        """Ask a yes/no question. False means the user declined."""
        ...

    def show_storage_manager(self, report: StorageReport, action: str) -> None:
        """Open the storage-management view after ``action`` ran out of space."""
        ...


class HeadlessPrompter:
    """Prompter for daemon mode: everything goes to the log."""

    def __init__(self, assume_yes: bool = False) -> None:
        self.assume_yes = assume_yes

    def notify(self, text: str) -> None:
        logger.info("%s", text)

    async def confirm(self, text: str) -> bool:
        logger.info("%s -> %s", text, "yes" if self.assume_yes else "no")
        return self.assume_yes

    def show_storage_manager(self, report: StorageReport, action: str) -> None:
        logger.warning("Storage full during %s. Free up space:\n%s", action, report.format())
