"""Simulated GPIO lines for testing without real hardware"""

from __future__ import annotations
import logging
from typing import Dict, List, Optional, Tuple

from ..exceptions import LineError
from ..types import Mode, Pull
from .base import LineProvider, PinLine

logger = logging.getLogger(__name__)


class SimulatedLine(PinLine):
    """In-memory line that journals every operation"""

    def __init__(self, pin_id: int, journal: List[Tuple[int, str, object]]):
        super().__init__(pin_id)
        self.mode: Optional[Mode] = None
        self.pull: Optional[Pull] = None
        self.level = 0
        self.fail_reads = False
        self.fail_writes = False
        self._journal = journal

    async def set_mode(self, mode: Mode) -> None:
        self.mode = mode
        self._journal.append((self.pin_id, "mode", mode))

    async def set_pull(self, pull: Pull) -> None:
        self.pull = pull
        self._journal.append((self.pin_id, "pull", pull))
        # An undriven input idles at the level its resistor pulls it to
        if self.mode is not Mode.OUTPUT:
            self.level = 1 if pull is Pull.HIGH else 0

    async def read(self) -> int:
        if self.fail_reads:
            raise LineError(f"Simulated read error on GPIO {self.pin_id}", self.pin_id)
        return self.level

    async def write(self, level: int) -> None:
        if self.fail_writes:
            raise LineError(f"Simulated write error on GPIO {self.pin_id}", self.pin_id)
        self.level = 1 if level else 0
        self._journal.append((self.pin_id, "write", self.level))

    def simulate_input_change(self, level: int) -> None:
        """Change the level as if driven externally and fire edge callbacks"""
        level = 1 if level else 0
        if level == self.level:
            return
        self.level = level
        logger.debug(f"Simulated input change: GPIO {self.pin_id} = {level}")
        self._notify_edge(level)


class SimulatedProvider(LineProvider):
    """Hands out SimulatedLine objects and keeps them addressable by pin id"""

    def __init__(self):
        self.lines: Dict[int, SimulatedLine] = {}
        self.journal: List[Tuple[int, str, object]] = []

    async def open_line(self, pin_id: int) -> SimulatedLine:
        if pin_id in self.lines:
            raise LineError(f"GPIO {pin_id} is already in use", pin_id)
        line = SimulatedLine(pin_id, self.journal)
        self.lines[pin_id] = line
        return line

    def simulate_input_change(self, pin_id: int, level: int) -> None:
        """Simulate an external level change on a pin (for testing)"""
        line = self.lines.get(pin_id)
        if line is None:
            raise LineError(f"GPIO {pin_id} is not open", pin_id)
        line.simulate_input_change(level)

    def writes(self, pin_id: int) -> List[int]:
        """Levels written to a pin, oldest first"""
        return [value for pid, op, value in self.journal if pid == pin_id and op == "write"]

    async def close(self) -> None:
        for line in self.lines.values():
            await line.close()
        self.lines.clear()
        logger.info("Simulated provider closed")
