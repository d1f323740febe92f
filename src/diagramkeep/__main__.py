"""Entry point: python -m diagramkeep [chat|serve]

- No args / "chat": Interactive CLI REPL, plus the editor bridge if enabled
- "serve":          Headless daemon serving the editor bridge
"""

from __future__ import annotations

import asyncio
import logging
import sys

from diagramkeep.config import load_config
from diagramkeep.errors import CorruptRegistry


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


async def _chat(daemon, cli) -> None:
    daemon._check_existing()
    daemon._write_pid()
    app = daemon._build_app(cli, dialog=cli.file_dialog())
    bridge = daemon._build_bridge(app)
    app.start()
    try:
        if bridge:
            await bridge.start()
        await cli.start(app)
    finally:
        if bridge:
            await bridge.stop()
        await app.stop()
        daemon._remove_pid()


def _run_cli() -> None:
    """Interactive CLI REPL mode."""
    config = load_config()
    _setup_logging(config.log_level)

    from diagramkeep.connectors.cli import CLIConnector
    from diagramkeep.daemon import DiagramKeepDaemon

    daemon = DiagramKeepDaemon(config)
    cli = CLIConnector()

    try:
        asyncio.run(_chat(daemon, cli))
    except KeyboardInterrupt:
        pass


def _run_serve() -> None:
    """Daemon mode — editor bridge only."""
    config = load_config()
    _setup_logging(config.log_level)

    from diagramkeep.daemon import DiagramKeepDaemon

    daemon = DiagramKeepDaemon(config)
    asyncio.run(daemon.run())


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "chat"

    try:
        if cmd in ("chat", "repl"):
            _run_cli()
        elif cmd == "serve":
            _run_serve()
        else:
            print("Usage: python -m diagramkeep [chat|serve]")
            print("  chat   — Interactive CLI REPL (default)")
            print("  serve  — Headless daemon serving the editor bridge")
            sys.exit(1)
    except CorruptRegistry as e:
        print(f"{e}. Move the storage directory aside to start fresh.", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
