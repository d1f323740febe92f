"""HTTP bridge between the embedded editor and the session.

The editor fetches the complete document on (re)initialisation, watching
``renderKey`` to know when the document was replaced wholesale, and posts
partial model updates as the user edits.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from aiohttp import web

from diagramkeep.events import EditorEvent

if TYPE_CHECKING:
    from diagramkeep.config import EditorConfig
    from diagramkeep.core import DiagramKeep

logger = logging.getLogger(__name__)


class EditorBridge:
    """aiohttp server exposing the document to the editor."""

    def __init__(self, app: DiagramKeep, config: EditorConfig) -> None:
        self._app = app
        self._config = config
        self._runner: web.AppRunner | None = None

    @property
    def name(self) -> str:
        return "editor"

    def build_app(self) -> web.Application:
        webapp = web.Application()
        webapp.router.add_get("/api/document", self._handle_document)
        webapp.router.add_post("/api/model", self._handle_model)
        webapp.router.add_get("/api/status", self._handle_status)
        webapp.router.add_get("/api/diagrams", self._handle_diagrams)
        return webapp

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()
        logger.info("Editor bridge listening on %s:%d", self._config.host, self._config.port)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Editor bridge stopped")

    async def _handle_document(self, request: web.Request) -> web.Response:
        return web.json_response(self._app.session.editor_payload())

    async def _handle_model(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return web.json_response({"error": "invalid JSON"}, status=400)
        if not isinstance(body, dict):
            return web.json_response({"error": "model update must be an object"}, status=400)

        await self._app.bus.publish(EditorEvent.MODEL_UPDATED, body)
        return web.json_response(
            {
                "hasUnsavedChanges": self._app.session.has_unsaved_changes,
                "renderKey": self._app.session.render_key,
            }
        )

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self._app.status())

    async def _handle_diagrams(self, request: web.Request) -> web.Response:
        records = self._app.list_diagrams(sort_by_updated=True)
        return web.json_response(
            [
                {
                    "id": r.id,
                    "name": r.name,
                    "createdAt": r.created_at,
                    "updatedAt": r.updated_at,
                }
                for r in records
            ]
        )
