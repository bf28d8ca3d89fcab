"""Shared fixtures for gpioserver tests"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import pytest

from gpioserver.config import ConfigFile, ConfigParser
from gpioserver.engine import CommandEngine
from gpioserver.registry import PinRegistry
from gpioserver.backends.simulated import SimulatedProvider

SAMPLE_CONFIG = """\
#
# Test bench
#
AllowRename Yes

GPIO 17
    Mode  = Output
    Logic = Invert
    Boot  = On
    HName = "Relay 2"
    UName = "Lamp"

GPIO 4
    Mode  = Output
    Logic = Normal
    HName = "Relay 1"
    UName = "Kettle"
    UDesc = "Kitchen # counter"

GPIO 7
    Mode  = Input
    Logic = Invert
    Pull  = High
    HName = "Door"
"""


@dataclass
class Bench:
    """Engine wired to simulated lines and a config file on disk"""
    path: Path
    provider: SimulatedProvider
    registry: PinRegistry
    engine: CommandEngine
    sleeps: List[float] = field(default_factory=list)

    async def run(self, type_, arg1=None, arg2=None, state=None):
        message = {"Type": type_}
        if arg1 is not None:
            message["Arg1"] = arg1
        if arg2 is not None:
            message["Arg2"] = arg2
        if state is not None:
            message["State"] = state
        return await self.engine.execute(message)


async def make_bench(tmp_path: Path, text: str = SAMPLE_CONFIG) -> Bench:
    path = tmp_path / "gpio.conf"
    path.write_text(text)

    provider = SimulatedProvider()
    config = await ConfigParser(provider).load(ConfigFile(path))
    registry = PinRegistry(config)
    sleeps: List[float] = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    engine = CommandEngine(registry, ConfigFile(path), "testhost", sleep=fake_sleep)
    return Bench(path=path, provider=provider, registry=registry, engine=engine, sleeps=sleeps)


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "gpio.conf"
    path.write_text(SAMPLE_CONFIG)
    return path


@pytest.fixture
async def bench(tmp_path):
    return await make_bench(tmp_path)
