"""Authoritative in-memory GPIO state"""

from __future__ import annotations
import asyncio
import logging
from typing import List, Optional

from .exceptions import LineError
from .types import GlobalConfig, PinConfig

logger = logging.getLogger(__name__)


class PinRegistry:
    """Owns the GlobalConfig and the lines bound to it.

    Every read-compute-write sequence against the lines, every refresh and
    every persist-and-reload must hold ``lock``. The lock is not reentrant.
    """

    def __init__(self, config: Optional[GlobalConfig] = None):
        self.config = config or GlobalConfig.not_configured()
        self.lock = asyncio.Lock()

    @property
    def allow_rename(self) -> bool:
        return self.config.allow_rename

    @property
    def configured(self) -> bool:
        return self.config.valid

    def get(self, pin_id: int) -> Optional[PinConfig]:
        return self.config.pins.get(pin_id)

    def pins(self) -> List[PinConfig]:
        """All pins, ascending by id"""
        return self.config.sorted_pins()

    async def refresh(self) -> None:
        """Sample every line and store its On/Off label"""
        async with self.lock:
            await self.refresh_locked()

    async def refresh_locked(self) -> None:
        """Same as refresh(), for callers already holding the lock"""
        for pin in self.pins():
            if pin.line is None:
                continue
            level = await pin.line.read()
            pin.value = pin.logic.label(level)

    async def read_label(self, pin: PinConfig) -> str:
        """Read one line and store its label (caller holds the lock)"""
        if pin.line is None:
            raise LineError(f"GPIO {pin.id} has no line bound", pin.id)
        level = await pin.line.read()
        pin.value = pin.logic.label(level)
        return pin.value

    def reload_names(self, reloaded: GlobalConfig) -> None:
        """Adopt user-facing names from a freshly parsed copy of the file.

        Lines, modes and polarity stay as bound at startup.
        """
        self.config.allow_rename = reloaded.allow_rename
        for pin_id, pin in self.config.pins.items():
            fresh = reloaded.pins.get(pin_id)
            if fresh is None:
                logger.warning(f"GPIO {pin_id} missing from reloaded configuration; keeping names")
                continue
            pin.uname = fresh.uname
            pin.udesc = fresh.udesc

    async def close(self) -> None:
        for pin in self.pins():
            if pin.line is not None:
                await pin.line.close()
