"""HTTP surface for starting a pairing attempt and polling its progress."""

from __future__ import annotations

import json
import logging
from importlib import resources
from typing import Any

from aiohttp import web

from .coordinator import ConnectionCoordinator
from .exceptions import ConflictingAttempt, InvalidPhoneNumber, UnsupportedMethod
from .qr import qr_svg

logger = logging.getLogger(__name__)


class SessionServer:
    """
    aiohttp application around a `ConnectionCoordinator`.

    - `POST /start-session` starts an attempt (`{method, phoneNumber?}`)
    - `GET /status` reports the published status snapshot
    - `GET /qr.svg` renders the pending QR
    - `GET /` serves the polling page, `GET /health` answers `OK`
    """

    def __init__(self, coordinator: ConnectionCoordinator) -> None:
        self.coordinator = coordinator
        self.app = web.Application()
        self.app.on_cleanup.append(self._on_cleanup)
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/", self._handle_index)
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/status", self._handle_status)
        self.app.router.add_get("/qr.svg", self._handle_qr)
        self.app.router.add_post("/start-session", self._handle_start)

    async def _on_cleanup(self, app: web.Application) -> None:
        await self.coordinator.shutdown()

    async def _handle_index(self, request: web.Request) -> web.Response:
        page = resources.files("sessiongen").joinpath("static/index.html").read_text("utf-8")
        return web.Response(text=page, content_type="text/html")

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="OK")

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.coordinator.status.current_status().to_dict())

    async def _handle_qr(self, request: web.Request) -> web.Response:
        qr = self.coordinator.status.current_status().pending_qr
        if not qr:
            return _error("no QR code is pending", status=404)
        return web.Response(
            body=qr_svg(qr),
            content_type="image/svg+xml",
            headers={"Cache-Control": "no-store"},
        )

    async def _handle_start(self, request: web.Request) -> web.Response:
        try:
            body = await _read_body(request)
        except ValueError as e:
            return _error(str(e), status=400)

        method = body.get("method")
        phone_number = body.get("phoneNumber", body.get("phone_number"))
        if not isinstance(method, str):
            return _error("'method' must be 'qr' or 'pairing'", status=400)
        if phone_number is not None and not isinstance(phone_number, str):
            return _error("'phoneNumber' must be a string", status=400)

        try:
            self.coordinator.begin(method, phone_number)
        except ConflictingAttempt as e:
            return _error(str(e), status=409, state=e.state)
        except (InvalidPhoneNumber, UnsupportedMethod) as e:
            return _error(str(e), status=400)

        return web.json_response(
            self.coordinator.status.current_status().to_dict(), status=202
        )


async def _read_body(request: web.Request) -> dict[str, Any]:
    if request.content_type == "application/json":
        try:
            data = await request.json()
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid JSON body: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return data
    form = await request.post()
    return {k: v for k, v in form.items() if isinstance(v, str)}


def _error(message: str, *, status: int, **extra: Any) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)
