from .types import Boot, GlobalConfig, Logic, Mode, PinConfig, Pull, Request
from .config import ConfigFile, ConfigParser, DuplicatePolicy, format_config, parse_config
from .registry import PinRegistry
from .snapshot import PublicSnapshot, build_snapshot
from .engine import COMMANDS, NO_ERROR, CommandEngine
from .broadcast import Broadcaster
from .service import GpioService
from .backends import LineProvider, PinLine, SimulatedProvider

__version__ = "0.1.0"
__license__ = "MIT"
__description__ = "Named GPIO control over a persistent WebSocket connection"
__keywords__ = ["GPIO", "hardware", "embedded", "asyncio", "websocket"]

__all__ = [
    "Boot",
    "GlobalConfig",
    "Logic",
    "Mode",
    "PinConfig",
    "Pull",
    "Request",
    "ConfigFile",
    "ConfigParser",
    "DuplicatePolicy",
    "format_config",
    "parse_config",
    "PinRegistry",
    "PublicSnapshot",
    "build_snapshot",
    "COMMANDS",
    "NO_ERROR",
    "CommandEngine",
    "Broadcaster",
    "GpioService",
    "LineProvider",
    "PinLine",
    "SimulatedProvider",
]
