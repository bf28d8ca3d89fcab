"""Common I2C device functionality"""

from __future__ import annotations
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import smbus2

logger = logging.getLogger(__name__)


class AsyncI2CDevice:
    """Asynchronous I2C device with a single-thread executor for bus access"""

    def __init__(self, bus_number: int = 1, address: Optional[int] = None):
        self._bus = smbus2.SMBus(bus_number)
        self._address = address
        self._executor = ThreadPoolExecutor(max_workers=1)  # Single worker for I2C
        self._lock = asyncio.Lock()

    @property
    def address(self) -> Optional[int]:
        return self._address

    def set_address(self, address: int) -> None:
        """Set the I2C device address"""
        self._address = address

    async def _run(self, func, *args):
        if self._address is None:
            raise ValueError("I2C address not set")

        async with self._lock:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, self._address, *args)

    async def write_byte(self, register: int, value: int) -> None:
        """Write a byte to a register asynchronously"""
        await self._run(self._bus.write_byte_data, register, value)

    async def read_byte(self, register: int) -> int:
        """Read a byte from a register asynchronously"""
        return await self._run(self._bus.read_byte_data, register)

    async def read_bytes(self, register: int, length: int) -> List[int]:
        """Read multiple bytes from sequential registers asynchronously"""
        return await self._run(self._bus.read_i2c_block_data, register, length)

    async def close(self) -> None:
        """Close the I2C bus and executor"""
        try:
            self._executor.shutdown(wait=True)
            self._bus.close()
        except Exception as e:
            logger.error(f"Error closing I2C device: {e}")
