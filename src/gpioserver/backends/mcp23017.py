"""MCP23017 I/O expander lines

Pin ids map onto chips in order: ids 0-15 live on the first configured
address, 16-31 on the second. Within a chip, pins 0-7 are port A and
8-15 are port B.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..exceptions import LineError
from ..types import Mode, Pull
from .base import LineProvider, PinLine
from .common.i2c import AsyncI2CDevice

logger = logging.getLogger(__name__)

PINS_PER_CHIP = 16

# MCP23017 Register Addresses (IOCON.BANK = 0)
IODIRA = 0x00  # I/O Direction Register A
IODIRB = 0x01  # I/O Direction Register B
GPPUA = 0x0C   # Pull-up Resistor Register A
GPPUB = 0x0D   # Pull-up Resistor Register B
GPIOA = 0x12   # Port Register A
GPIOB = 0x13   # Port Register B
OLATA = 0x14   # Output Latch Register A
OLATB = 0x15   # Output Latch Register B


@dataclass
class MCP23017Config:
    """Bus settings for the expander chips"""
    bus_number: int = 1
    addresses: List[int] = field(default_factory=lambda: [0x20, 0x21])
    poll_interval: float = 0.01  # 10ms input polling


def _port_register(pin: int, reg_a: int, reg_b: int) -> int:
    return reg_a if pin < 8 else reg_b


class MCP23017Chip:
    """Register-level access to a single MCP23017"""

    def __init__(self, address: int, bus_number: int = 1, device: Optional[AsyncI2CDevice] = None):
        self.address = address
        self.device = device or AsyncI2CDevice(bus_number=bus_number, address=address)
        self._olat = 0
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """All pins input, no pull-ups, latches cleared"""
        async with self._lock:
            await self.device.write_byte(IODIRA, 0xFF)
            await self.device.write_byte(IODIRB, 0xFF)
            await self.device.write_byte(GPPUA, 0x00)
            await self.device.write_byte(GPPUB, 0x00)
            await self.device.write_byte(OLATA, 0x00)
            await self.device.write_byte(OLATB, 0x00)
            self._olat = 0
        logger.info(f"Initialized MCP23017 at address 0x{self.address:02X}")

    async def _update_bit(self, reg_a: int, reg_b: int, pin: int, value: bool) -> None:
        reg = _port_register(pin, reg_a, reg_b)
        mask = 1 << (pin % 8)
        async with self._lock:
            current = await self.device.read_byte(reg)
            new = current | mask if value else current & ~mask
            await self.device.write_byte(reg, new)

    async def set_direction(self, pin: int, output: bool) -> None:
        # IODIR bit set means input
        await self._update_bit(IODIRA, IODIRB, pin, not output)

    async def set_pull_up(self, pin: int, enabled: bool) -> None:
        await self._update_bit(GPPUA, GPPUB, pin, enabled)

    async def write_latch(self, pin: int, level: int) -> None:
        """Set one output latch bit, leaving the others untouched"""
        mask = 1 << pin
        async with self._lock:
            self._olat = self._olat | mask if level else self._olat & ~mask
            reg = _port_register(pin, OLATA, OLATB)
            port_value = (self._olat >> 8) & 0xFF if pin >= 8 else self._olat & 0xFF
            await self.device.write_byte(reg, port_value)

    async def read_ports(self) -> int:
        """Both port registers as one 16-bit value (port B high)"""
        async with self._lock:
            port_a, port_b = await self.device.read_bytes(GPIOA, 2)
        return port_a | (port_b << 8)

    async def read_pin(self, pin: int) -> int:
        return (await self.read_ports() >> pin) & 1

    async def close(self) -> None:
        await self.device.close()


class MCPLine(PinLine):
    """One pin of an MCP23017"""

    def __init__(self, pin_id: int, chip: MCP23017Chip, chip_pin: int):
        super().__init__(pin_id)
        self.chip = chip
        self.chip_pin = chip_pin
        self.mode: Optional[Mode] = None
        self.last_level: Optional[int] = None

    async def set_mode(self, mode: Mode) -> None:
        await self._guard(self.chip.set_direction(self.chip_pin, mode is Mode.OUTPUT))
        self.mode = mode

    async def set_pull(self, pull: Pull) -> None:
        if pull is Pull.LOW:
            raise LineError(f"GPIO {self.pin_id}: MCP23017 has no pull-down resistors", self.pin_id)
        await self._guard(self.chip.set_pull_up(self.chip_pin, pull is Pull.HIGH))

    async def read(self) -> int:
        return await self._guard(self.chip.read_pin(self.chip_pin))

    async def write(self, level: int) -> None:
        await self._guard(self.chip.write_latch(self.chip_pin, 1 if level else 0))

    async def _guard(self, operation):
        try:
            return await operation
        except OSError as e:
            raise LineError(f"I2C error on GPIO {self.pin_id} (chip 0x{self.chip.address:02X}): {e}", self.pin_id) from e


class MCPProvider(LineProvider):
    """Lines backed by one or two MCP23017 expanders"""

    def __init__(self, config: Optional[MCP23017Config] = None, chips: Optional[List[MCP23017Chip]] = None):
        self.config = config or MCP23017Config()
        self._chips: Optional[List[MCP23017Chip]] = chips
        self._initialized = False
        self.lines: Dict[int, MCPLine] = {}
        self._running = False
        self._polling_task: Optional[asyncio.Task] = None

    async def _ensure_chips(self) -> List[MCP23017Chip]:
        if self._chips is None:
            self._chips = [
                MCP23017Chip(address, self.config.bus_number) for address in self.config.addresses
            ]
        if not self._initialized:
            try:
                for chip in self._chips:
                    await chip.initialize()
            except OSError as e:
                raise LineError(f"Failed to initialize MCP23017 chips: {e}") from e
            self._initialized = True
        return self._chips

    async def open_line(self, pin_id: int) -> MCPLine:
        chips = await self._ensure_chips()
        index, chip_pin = divmod(pin_id, PINS_PER_CHIP)
        if index >= len(chips):
            raise LineError(f"GPIO {pin_id}: no MCP23017 configured for pins {index * PINS_PER_CHIP}-{index * PINS_PER_CHIP + 15}", pin_id)
        if pin_id in self.lines:
            raise LineError(f"GPIO {pin_id} is already in use", pin_id)

        line = MCPLine(pin_id, chips[index], chip_pin)
        self.lines[pin_id] = line
        return line

    async def start(self) -> None:
        """Start polling input pins for edges"""
        if self._running:
            return
        self._running = True
        self._polling_task = asyncio.create_task(self._polling_loop())
        logger.info("MCP23017 input polling started")

    async def close(self) -> None:
        self._running = False

        if self._polling_task:
            self._polling_task.cancel()
            try:
                await self._polling_task
            except asyncio.CancelledError:
                pass
            self._polling_task = None

        for line in self.lines.values():
            await line.close()
        self.lines.clear()

        for chip in self._chips or []:
            await chip.close()
        self._initialized = False
        logger.info("MCP23017 provider closed")

    async def poll_once(self) -> None:
        """Read every chip once and fire callbacks for changed inputs"""
        chips = self._chips or []
        for index, chip in enumerate(chips):
            inputs = [
                line for line in self.lines.values()
                if line.chip is chip and line.mode is Mode.INPUT
            ]
            if not inputs:
                continue
            ports = await chip.read_ports()
            for line in inputs:
                level = (ports >> line.chip_pin) & 1
                previous, line.last_level = line.last_level, level
                if previous is not None and previous != level:
                    line._notify_edge(level)

    async def _polling_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
                await asyncio.sleep(self.config.poll_interval)
            except asyncio.CancelledError:
                logger.info("Polling loop cancelled")
                break
            except Exception as e:
                logger.error(f"Error in polling loop: {e}")
                await asyncio.sleep(self.config.poll_interval)
