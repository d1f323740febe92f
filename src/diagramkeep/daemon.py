"""Daemon process — headless mode serving the editor bridge.

Usage: python -m diagramkeep serve

Manages:
- Storage substrate and icon catalog construction
- PID file (one writer per storage directory)
- Graceful shutdown (SIGTERM/SIGINT)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from diagramkeep.config import DiagramKeepConfig, load_config
from diagramkeep.connectors.base import HeadlessPrompter, Prompter
from diagramkeep.connectors.editor_bridge import EditorBridge
from diagramkeep.core import DiagramKeep
from diagramkeep.document.icons import IconCatalog, load_catalog
from diagramkeep.exchange import FileDialog
from diagramkeep.storage.store import PersistenceStore
from diagramkeep.storage.substrate import FileSubstrate, KeyValueSubstrate, MemorySubstrate

logger = logging.getLogger(__name__)


class DiagramKeepDaemon:
    """Process-level wiring and lifecycle."""

    def __init__(self, config: DiagramKeepConfig | None = None) -> None:
        self.config = config or load_config()
        self._shutdown_event = asyncio.Event()

    # ── PID file management ──────────────────────────────────

    def _write_pid(self) -> None:
        self.config.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_file.write_text(str(os.getpid()))
        logger.info("PID file written: %s (pid=%d)", self.config.pid_file, os.getpid())

    def _remove_pid(self) -> None:
        if self.config.pid_file.exists():
            self.config.pid_file.unlink()

    def _check_existing(self) -> None:
        if not self.config.pid_file.exists():
            return
        try:
            pid = int(self.config.pid_file.read_text().strip())
            os.kill(pid, 0)  # Check if process exists
            print(f"diagramkeep already running (pid={pid}). Exiting.", file=sys.stderr)
            sys.exit(1)
        except (ProcessLookupError, ValueError):
            # Stale PID file
            self._remove_pid()

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> None:
        loop = asyncio.get_event_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    # ── Build components ─────────────────────────────────────

    def _build_substrate(self) -> KeyValueSubstrate:
        storage = self.config.storage
        if storage.backend == "memory":
            logger.warning("Using in-memory storage: saved diagrams last only for this session")
            return MemorySubstrate(storage.quota_bytes)
        if storage.backend == "file":
            return FileSubstrate(storage.path, storage.quota_bytes)
        raise ValueError(f"Unknown storage backend: {storage.backend}")

    def _build_app(self, prompter: Prompter, dialog: FileDialog | None = None) -> DiagramKeep:
        catalog: IconCatalog = load_catalog(self.config.icons)
        store = PersistenceStore(self._build_substrate(), catalog)
        app = DiagramKeep(self.config, store, catalog, prompter, dialog=dialog)
        app.restore()
        return app

    def _build_bridge(self, app: DiagramKeep) -> EditorBridge | None:
        if not self.config.editor.port:
            return None
        return EditorBridge(app, self.config.editor)

    # ── Main run loop ────────────────────────────────────────

    async def run(self) -> None:
        self._check_existing()
        self._write_pid()
        self._setup_signals()

        app = self._build_app(HeadlessPrompter(self.config.assume_yes))
        bridge = self._build_bridge(app)
        if bridge is None:
            logger.warning("Editor bridge disabled (editor.port = 0); nothing to serve")

        logger.info("diagramkeep daemon starting (storage=%s)", self.config.storage.backend)
        app.start()
        try:
            if bridge:
                await bridge.start()
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            if bridge:
                await bridge.stop()
            await app.stop()
            self._remove_pid()
            logger.info("diagramkeep daemon stopped.")
