"""GPIO service: configuration, registry, commands and push notifications"""

from __future__ import annotations
import asyncio
import logging
import socket
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from .backends.base import LineProvider
from .backends.simulated import SimulatedProvider
from .broadcast import DEFAULT_QUEUE_SIZE, Broadcaster, Subscription
from .config import ConfigFile, ConfigParser, DuplicatePolicy
from .engine import DEFAULT_CYCLE_MS, MUTATING_COMMANDS, NO_ERROR, CommandEngine
from .exceptions import GpioServerError
from .registry import PinRegistry
from .settings import ServerSettings

logger = logging.getLogger(__name__)


def push_message(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """Unsolicited snapshot message sent to every client"""
    return {"Type": "GetGPIOInfo", "State": snapshot, "Error": NO_ERROR}


class GpioService:
    """Owns one registry and runs every request against it.

    Input edge notifications may arrive from any thread; they are queued
    without blocking and turned into a refreshed snapshot pushed to all
    subscribers of ``broadcaster``.
    """

    def __init__(
        self,
        provider: LineProvider,
        config_path: Union[str, Path, None],
        sys_name: Optional[str] = None,
        cycle_ms: int = DEFAULT_CYCLE_MS,
        duplicates: DuplicatePolicy = DuplicatePolicy.OVERRIDE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.provider = provider
        self.config_file = ConfigFile(config_path)
        self.sys_name = sys_name or socket.gethostname()
        self.broadcaster = Broadcaster(queue_size)
        self.registry = PinRegistry()
        self.engine = CommandEngine(
            self.registry,
            self.config_file,
            self.sys_name,
            cycle_ms=cycle_ms,
            duplicates=duplicates,
            sleep=sleep,
        )
        self._parser = ConfigParser(provider, on_edge=self._on_edge, duplicates=duplicates)

        # Runtime control
        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._edges: Optional[asyncio.Queue] = None
        self._edge_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: ServerSettings) -> GpioService:
        """Build a service with the line provider named in the settings"""
        if settings.backend == "mcp23017":
            from .backends.mcp23017 import MCP23017Config, MCPProvider

            provider: LineProvider = MCPProvider(MCP23017Config(
                bus_number=settings.mcp.bus,
                addresses=list(settings.mcp.addresses),
                poll_interval=settings.mcp.poll_interval,
            ))
        else:
            provider = SimulatedProvider()

        return cls(
            provider,
            settings.config_path,
            sys_name=settings.sys_name,
            cycle_ms=settings.cycle_ms,
            duplicates=DuplicatePolicy(settings.duplicate_pins),
            queue_size=settings.client_queue_size,
        )

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Load the configuration, bind lines and start edge handling"""
        if self._running:
            return

        self._loop = asyncio.get_running_loop()
        self._edges = asyncio.Queue()

        self.registry.config = await self._parser.load(self.config_file)
        await self.registry.refresh()
        await self.provider.start()

        self._edge_task = asyncio.create_task(self._edge_loop())
        self._running = True
        logger.info(f"GPIO service started on {self.sys_name} with {len(self.registry.pins())} GPIOs")

    async def stop(self) -> None:
        self._running = False

        if self._edge_task:
            self._edge_task.cancel()
            try:
                await self._edge_task
            except asyncio.CancelledError:
                pass
            self._edge_task = None

        await self.registry.close()
        await self.provider.close()
        logger.info("GPIO service stopped")

    async def handle(self, message: Any, origin: Optional[Subscription] = None) -> Dict[str, Any]:
        """Execute one client request.

        After a successful state change the new snapshot is pushed to every
        other client; the requester gets it in the response.
        """
        response = await self.engine.execute(message)
        if response["Type"] in MUTATING_COMMANDS and response["Error"] == NO_ERROR:
            self.broadcaster.publish(push_message(response["State"]), exclude=origin)
        return response

    def snapshot(self) -> Dict[str, Any]:
        return self.engine.snapshot()

    # Internal methods

    def _on_edge(self, pin_id: int, level: int) -> None:
        if self._loop is None or self._edges is None:
            return
        event: Tuple[int, int] = (pin_id, level)
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is self._loop:
            self._edges.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._edges.put_nowait, event)

    async def _edge_loop(self) -> None:
        while True:
            try:
                pin_id, level = await self._edges.get()
                # Collapse a burst of edges into one refresh
                while not self._edges.empty():
                    pin_id, level = self._edges.get_nowait()
                logger.debug(f"Edge on GPIO {pin_id}: level {level}")

                await self.registry.refresh()
                self.broadcaster.publish(push_message(self.snapshot()))
            except asyncio.CancelledError:
                logger.info("Edge loop cancelled")
                break
            except GpioServerError as e:
                logger.error(f"Failed to refresh after input change: {e}")
            except Exception as e:
                logger.error(f"Error in edge loop: {e}")
