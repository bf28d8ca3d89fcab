"""Base hardware line interface"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, List

from ..types import Mode, Pull

logger = logging.getLogger(__name__)

EdgeCallback = Callable[[int, int], Any]


class PinLine(ABC):
    """Abstract capability for one physical binary I/O line"""

    def __init__(self, pin_id: int):
        self.pin_id = pin_id
        self._edge_callbacks: List[EdgeCallback] = []

    @abstractmethod
    async def set_mode(self, mode: Mode) -> None:
        """Switch the line between input and output"""
        pass

    @abstractmethod
    async def set_pull(self, pull: Pull) -> None:
        """Configure the bias resistor of an input line"""
        pass

    @abstractmethod
    async def read(self) -> int:
        """Read the electrical level (0 or 1)"""
        pass

    @abstractmethod
    async def write(self, level: int) -> None:
        """Drive the electrical level (0 or 1)"""
        pass

    async def close(self) -> None:
        """Release the line"""
        self._edge_callbacks.clear()

    def on_edge_change(self, callback: EdgeCallback) -> None:
        """Register callback(pin_id, level) for level changes on an input"""
        self._edge_callbacks.append(callback)

    def _notify_edge(self, level: int) -> None:
        for callback in list(self._edge_callbacks):
            try:
                callback(self.pin_id, level)
            except Exception as e:
                logger.error(f"Error in edge callback for GPIO {self.pin_id}: {e}")


class LineProvider(ABC):
    """Factory handing out one PinLine per configured pin"""

    @abstractmethod
    async def open_line(self, pin_id: int) -> PinLine:
        """Create the line for a pin id"""
        pass

    async def start(self) -> None:
        """Begin delivering edge notifications"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release all lines"""
        pass
