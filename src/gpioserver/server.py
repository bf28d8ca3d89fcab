"""WebSocket front end for the GPIO service"""

from __future__ import annotations
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.staticfiles import StaticFiles

from .broadcast import Subscription
from .service import GpioService
from .settings import ServerSettings
from .types import Request

logger = logging.getLogger(__name__)


class ClientSession:
    """One connected client.

    Requests are executed one at a time in arrival order. Pushed snapshots
    are drained from the client's bounded queue by a separate task, so a
    slow client only ever delays itself.
    """

    def __init__(self, websocket: WebSocket, service: GpioService):
        self.websocket = websocket
        self.service = service
        self._send_lock = asyncio.Lock()

    async def run(self) -> None:
        await self.websocket.accept()
        client = self.websocket.client
        logger.info(f"Client connected: {client}")

        with self.service.broadcaster.subscribe() as subscription:
            pusher = asyncio.create_task(self._push_loop(subscription))
            try:
                while True:
                    text = await self.websocket.receive_text()
                    response = await self._handle_text(text, subscription)
                    await self._send(response)
            except WebSocketDisconnect:
                logger.info(f"Client disconnected: {client}")
            finally:
                pusher.cancel()
                try:
                    await pusher
                except asyncio.CancelledError:
                    pass

    async def _handle_text(self, text: str, subscription: Subscription) -> Dict[str, Any]:
        try:
            message = json.loads(text)
        except ValueError:
            logger.warning(f"Ignoring non-JSON message: {text[:80]!r}")
            return Request(type="", state=self.service.snapshot(), error="Malformed request: invalid JSON").to_dict()
        return await self.service.handle(message, origin=subscription)

    async def _send(self, message: Dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_json(message)

    async def _push_loop(self, subscription: Subscription) -> None:
        while True:
            message = await subscription.get()
            try:
                await self._send(message)
            except Exception as e:
                logger.debug(f"Push to client failed: {e}")
                return


def create_application(settings: ServerSettings, service: Optional[GpioService] = None) -> FastAPI:
    """Create the FastAPI application serving one GpioService"""
    from . import __version__

    service = service or GpioService.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.start()
        try:
            yield
        finally:
            await service.stop()

    app = FastAPI(
        title="GPIO Server",
        description="Named GPIO control over WebSocket",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.gpio = service

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "configured": service.registry.configured,
            "pins": len(service.registry.pins()),
        }

    @app.websocket("/")
    async def gpio_socket(websocket: WebSocket) -> None:
        await ClientSession(websocket, service).run()

    if settings.static_dir:
        static_dir = Path(settings.static_dir)
        if static_dir.is_dir():
            app.mount("/ui", StaticFiles(directory=str(static_dir), html=True), name="ui")
        else:
            logger.warning(f"Static directory {static_dir} not found; web UI disabled")

    return app
