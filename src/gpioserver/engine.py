"""Request execution against the pin registry"""

from __future__ import annotations
import asyncio
import dataclasses
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import ConfigFile, DuplicatePolicy, format_config, parse_config
from .exceptions import CommandError, GpioServerError, LineError, PersistenceError
from .registry import PinRegistry
from .snapshot import build_snapshot
from .types import OFF, ON, GlobalConfig, PinConfig, Request
from .validation import validate_gpio_info, validate_request

logger = logging.getLogger(__name__)

NO_ERROR = "No error."
DEFAULT_CYCLE_MS = 6000

COMMANDS = [
    "ListCommands",
    "GetGPIOInfo",
    "SetGPIOInfo",
    "ToggleGPIO",
    "SetGPIO",
    "CycleGPIO",
    "ReadGPIO",
    "SetUName",
    "SetUDesc",
]

MUTATING_COMMANDS = frozenset({"SetGPIOInfo", "ToggleGPIO", "SetGPIO", "CycleGPIO", "SetUName", "SetUDesc"})


def parse_set_value(pin: PinConfig, value: Optional[str]) -> int:
    """Electrical level requested by a SetGPIO argument.

    "high"/"1" and "low"/"0" are absolute levels. "on"/"off" are relative to
    the pin's Logic, so that the pin afterwards reads back with that label.
    """
    wanted = (value or "").strip().lower()
    if wanted in ("high", "1"):
        return 1
    if wanted in ("low", "0"):
        return 0
    if wanted == "on":
        return pin.logic.level(ON)
    if wanted == "off":
        return pin.logic.level(OFF)
    raise CommandError(f"Unrecognized set value: '{value or ''}'")


def check_name(text: Optional[str]) -> str:
    if text is None:
        raise CommandError("Missing name")
    if '"' in text or len(text.splitlines()) > 1 or not text.isprintable():
        raise CommandError("Names may not contain double quotes or non-printable characters")
    return text.strip()


class CommandEngine:
    """Translates requests into reads and writes on the registry.

    Hardware sequences run under the registry lock. CycleGPIO releases the
    lock while it waits, so other commands proceed during the delay.
    """

    def __init__(
        self,
        registry: PinRegistry,
        config_file: ConfigFile,
        sys_name: str,
        cycle_ms: int = DEFAULT_CYCLE_MS,
        duplicates: DuplicatePolicy = DuplicatePolicy.OVERRIDE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.registry = registry
        self.config_file = config_file
        self.sys_name = sys_name
        self.cycle_ms = cycle_ms
        self.duplicates = duplicates
        self._sleep = sleep
        self._handlers: Dict[str, Callable[[Request], Awaitable[Any]]] = {
            "ListCommands": self.list_commands,
            "GetGPIOInfo": self.get_gpio_info,
            "SetGPIOInfo": self.set_gpio_info,
            "ToggleGPIO": self.toggle_gpio,
            "SetGPIO": self.set_gpio,
            "CycleGPIO": self.cycle_gpio,
            "ReadGPIO": self.read_gpio,
            "SetUName": self.set_uname,
            "SetUDesc": self.set_udesc,
        }

    def snapshot(self) -> Dict[str, Any]:
        return build_snapshot(self.registry, self.sys_name).to_dict()

    async def execute(self, message: Any) -> Dict[str, Any]:
        """Run one request and return the response message"""
        try:
            validate_request(message)
        except CommandError as e:
            logger.warning(str(e))
            request_type = message.get("Type") if isinstance(message, dict) else None
            response = Request(type=str(request_type or ""), state=self.snapshot(), error=str(e))
            return response.to_dict()

        request = Request.from_dict(message)
        handler = self._handlers.get(request.type)
        if handler is None:
            logger.warning(f"Unknown request type: {request.type}")
            request.error = f"Unknown request type: {request.type}"
            request.state = self.snapshot()
            return request.to_dict()

        try:
            request.state = await handler(request)
            request.error = NO_ERROR
        except (LineError, PersistenceError) as e:
            logger.error(f"{request.type} failed: {e}")
            request.error = str(e)
            request.state = self.snapshot()
        except GpioServerError as e:
            logger.warning(f"{request.type} rejected: {e}")
            request.error = str(e)
            request.state = self.snapshot()
        except Exception as e:
            logger.exception(f"Unexpected error in {request.type}")
            request.error = f"Internal error: {e}"
            request.state = self.snapshot()
        return request.to_dict()

    # Commands

    async def list_commands(self, request: Request) -> List[str]:
        return list(COMMANDS)

    async def get_gpio_info(self, request: Request) -> Dict[str, Any]:
        await self.registry.refresh()
        return self.snapshot()

    async def read_gpio(self, request: Request) -> str:
        pin = self._pin(request.arg1)
        async with self.registry.lock:
            return await self.registry.read_label(pin)

    async def toggle_gpio(self, request: Request) -> Dict[str, Any]:
        pin = self._output_pin(request.arg1)
        async with self.registry.lock:
            level = await pin.line.read()
            await pin.line.write(0 if level else 1)
        logger.info(f"Toggled GPIO {pin.id} ({pin.uname})")
        return await self._changed()

    async def set_gpio(self, request: Request) -> Dict[str, Any]:
        pin = self._output_pin(request.arg1)
        await self._drive(pin, request.arg2)
        return await self._changed()

    async def cycle_gpio(self, request: Request) -> Dict[str, Any]:
        pin = self._output_pin(request.arg1)
        delay_ms = self._cycle_time(request.arg2)

        await self._drive(pin, "Off")
        logger.info(f"Cycling GPIO {pin.id}: waiting {delay_ms} ms")
        await self._sleep(delay_ms / 1000.0)
        await self._drive(pin, "On")
        return await self._changed()

    async def set_uname(self, request: Request) -> Dict[str, Any]:
        return await self._rename_one(request, "uname")

    async def set_udesc(self, request: Request) -> Dict[str, Any]:
        return await self._rename_one(request, "udesc")

    async def set_gpio_info(self, request: Request) -> Dict[str, Any]:
        self._require_rename()
        changes: Dict[int, Dict[str, str]] = {}
        for entry in validate_gpio_info(request.state):
            try:
                pin_id = int(entry["ID"])
            except (TypeError, ValueError):
                logger.debug(f"Ignoring GPIO info entry with bad id {entry['ID']!r}")
                continue
            if self.registry.get(pin_id) is None:
                logger.debug(f"Ignoring GPIO info entry for unknown GPIO {pin_id}")
                continue
            fields = {}
            if "UName" in entry:
                fields["uname"] = check_name(entry["UName"])
            if "UDesc" in entry:
                fields["udesc"] = check_name(entry["UDesc"])
            if fields:
                changes[pin_id] = fields

        if changes:
            await self._persist(changes)
        return await self._changed()

    # Helpers

    def _pin(self, arg: Optional[str]) -> PinConfig:
        try:
            pin = self.registry.get(int(arg))
        except (TypeError, ValueError):
            pin = None
        if pin is None:
            raise CommandError(f"No such GPIO: {arg}")
        return pin

    def _output_pin(self, arg: Optional[str]) -> PinConfig:
        pin = self._pin(arg)
        if not pin.is_output:
            raise CommandError(f"GPIO {pin.id} is not an output device")
        if pin.line is None:
            raise LineError(f"GPIO {pin.id} has no line bound", pin.id)
        return pin

    def _cycle_time(self, arg: Optional[str]) -> int:
        if arg is None or not arg.strip():
            return self.cycle_ms
        try:
            delay_ms = int(arg)
        except ValueError:
            delay_ms = -1
        if delay_ms < 0:
            raise CommandError(f"Invalid cycle time: '{arg}'")
        return delay_ms

    def _require_rename(self) -> None:
        if not self.registry.allow_rename:
            raise CommandError("Renaming disallowed")

    async def _drive(self, pin: PinConfig, value: Optional[str]) -> None:
        level = parse_set_value(pin, value)
        async with self.registry.lock:
            await pin.line.write(level)
        logger.info(f"Set GPIO {pin.id} ({pin.uname}) to level {level}")

    async def _rename_one(self, request: Request, field_name: str) -> Dict[str, Any]:
        self._require_rename()
        pin = self._pin(request.arg1)
        await self._persist({pin.id: {field_name: check_name(request.arg2)}})
        return await self._changed()

    def _staged(self, changes: Dict[int, Dict[str, str]]) -> GlobalConfig:
        current = self.registry.config
        pins = {
            pin_id: dataclasses.replace(pin, line=None, value=None, **changes.get(pin_id, {}))
            for pin_id, pin in current.pins.items()
        }
        return GlobalConfig(
            allow_rename=current.allow_rename,
            pins=pins,
            valid=current.valid,
            path=current.path,
        )

    async def _persist(self, changes: Dict[int, Dict[str, str]]) -> None:
        """Write renamed pins to the file, then adopt what was written.

        Memory is only touched after the file has been saved and read back.
        """
        async with self.registry.lock:
            text = format_config(self._staged(changes))
            # Never write a file that would not load again
            parse_config(text, self.duplicates)
            await asyncio.to_thread(self.config_file.write, text)
            saved = await asyncio.to_thread(self.config_file.read)
            if saved is None:
                raise PersistenceError(f"Saved configuration {self.config_file.path} could not be read back")
            self.registry.reload_names(parse_config(saved, self.duplicates))
        logger.info(f"Renamed GPIOs {sorted(changes)}")

    async def _changed(self) -> Dict[str, Any]:
        await self.registry.refresh()
        return self.snapshot()
