"""Local CLI REPL connector — drives the session from a terminal.

Menu actions (new / open / export) are published on the event bus the same
way a desktop menu would publish them; everything else calls the controller
directly.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import TYPE_CHECKING

from diagramkeep.events import EditorEvent
from diagramkeep.exchange import FilesystemDialog

if TYPE_CHECKING:
    from diagramkeep.core import DiagramKeep
    from diagramkeep.storage.manager import StorageReport

logger = logging.getLogger(__name__)

HELP_TEXT = """\
Commands:
  new                  start a new diagram
  save <name>          save to the session registry under <name>
  quick                quick-save the current diagram
  load <id|name>       load a saved diagram
  delete <id|name>     delete a saved diagram
  list                 list saved diagrams
  open                 import a diagram file
  export               export the diagram to a file
  update <json>        apply a model update, as the editor would
  status               show the current session
  storage              show storage usage
  storage clear        delete every saved diagram
  help                 show this help
  exit                 quit"""


class CLIConnector:
    """Interactive REPL connector — reads from stdin, writes to stdout."""

    def __init__(self) -> None:
        self._running = False

    @property
    def name(self) -> str:
        return "cli"

    def file_dialog(self) -> FilesystemDialog:
        return FilesystemDialog(self._ask)

    # ── Prompter ─────────────────────────────────────────────

    def notify(self, text: str) -> None:
        print(text)

    async def confirm(self, text: str) -> bool:
        answer = await self._ask(f"{text} [y/N] ", None)
        return (answer or "").strip().lower() in ("y", "yes")

    def show_storage_manager(self, report: StorageReport, action: str) -> None:
        print(f"\nStorage full! {action} could not be written.")
        print(report.format())
        print("Free up space with 'delete <id>' or 'storage clear', or export diagrams first.")

    async def _ask(self, prompt: str, default: str | None) -> str | None:
        loop = asyncio.get_event_loop()
        line = await loop.run_in_executor(None, self._read_input, prompt)
        if line is None:
            return None
        return line.strip()

    def _read_input(self, prompt: str = "\ndiagramkeep> ") -> str | None:
        try:
            sys.stdout.write(prompt)
            sys.stdout.flush()
            raw = sys.stdin.buffer.readline()
            if not raw:
                return None
            return raw.decode("utf-8", errors="replace").rstrip("\n")
        except EOFError:
            return None

    # ── REPL ─────────────────────────────────────────────────

    async def start(self, app: DiagramKeep) -> None:
        self._running = True
        loop = asyncio.get_event_loop()

        print("diagramkeep (type 'help' for commands, 'exit' or Ctrl+C to quit)")
        print("-" * 48)
        print(f"Current: {app.session.display_name}")

        while self._running:
            try:
                line = await loop.run_in_executor(None, self._read_input)
            except (EOFError, KeyboardInterrupt):
                print("\nBye!")
                break

            if line is None or line.strip().lower() in ("exit", "quit"):
                print("Bye!")
                break

            text = line.strip()
            if not text:
                continue
            await self.dispatch(app, text)

    async def stop(self) -> None:
        self._running = False

    async def dispatch(self, app: DiagramKeep, text: str) -> None:
        command, _, arg = text.partition(" ")
        command = command.lower()
        arg = arg.strip()

        if command == "new":
            await app.bus.publish(EditorEvent.MENU_NEW_DIAGRAM)
        elif command == "open":
            await app.bus.publish(EditorEvent.MENU_OPEN_FILE)
        elif command == "export":
            await app.bus.publish(EditorEvent.MENU_SAVE_FILE)
        elif command == "save":
            record = await app.save_diagram(arg)
            if record is not None:
                print(f"Saved '{record.name}' (id={record.id})")
        elif command == "quick":
            record = await app.quick_save()
            print(f"Saved '{record.name}'" if record else "Nothing to save")
        elif command == "load":
            if await app.load_diagram(arg):
                print(f"Current: {app.session.display_name}")
        elif command == "delete":
            if await app.delete_diagram(arg):
                print("Deleted")
        elif command == "list":
            self._print_list(app)
        elif command == "update":
            try:
                partial = json.loads(arg or "{}")
            except json.JSONDecodeError as e:
                print(f"Invalid JSON: {e}")
                return
            await app.bus.publish(EditorEvent.MODEL_UPDATED, partial)
            print("Modified")
        elif command == "status":
            self._print_status(app)
        elif command == "storage":
            if arg == "clear":
                if await app.clear_storage():
                    print("Storage cleared")
            else:
                print(app.storage_report().format())
        elif command == "help":
            print(HELP_TEXT)
        else:
            print(f"Unknown command: {command} (type 'help')")

    def _print_list(self, app: DiagramKeep) -> None:
        records = app.list_diagrams()
        if not records:
            print("No saved diagrams found in this session")
            return
        for record in records:
            marker = "*" if app.session.active_record and app.session.active_record.id == record.id else " "
            print(f"{marker} {record.id}  {record.name}  (updated {record.updated_at})")

    def _print_status(self, app: DiagramKeep) -> None:
        status = app.status()
        line = f"Current: {status['name']}"
        if status["hasUnsavedChanges"]:
            line += "  • Modified"
        print(line)
        if status["lastAutoSave"]:
            print(f"  last saved: {status['lastAutoSave']}")
        print(f"  auto-save: {status['autosave']}  saved diagrams: {status['savedDiagrams']}")
