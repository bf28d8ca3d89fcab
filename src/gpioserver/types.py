from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .backends.base import PinLine

ON = "On"
OFF = "Off"

MIN_PIN_ID = 0
MAX_PIN_ID = 31


class Mode(Enum):
    """Direction of a GPIO line"""
    INPUT = "Input"
    OUTPUT = "Output"


class Logic(Enum):
    """Mapping between the electrical level and the On/Off label"""
    NORMAL = "Normal"
    INVERT = "Invert"

    def label(self, level: int) -> str:
        """Label shown to users for an electrical level"""
        high = bool(level)
        if self is Logic.INVERT:
            high = not high
        return ON if high else OFF

    def level(self, label: str) -> int:
        """Electrical level that produces the given label"""
        on = label == ON
        if self is Logic.INVERT:
            on = not on
        return 1 if on else 0


class Pull(Enum):
    """Input bias resistor"""
    NONE = "None"
    LOW = "Low"
    HIGH = "High"


class Boot(Enum):
    """Label an output is driven to after initialization"""
    OFF = OFF
    ON = ON


@dataclass
class PinConfig:
    """Configuration and live state for a single GPIO."""
    id: int
    mode: Mode = Mode.INPUT
    logic: Logic = Logic.NORMAL
    pull: Pull = Pull.NONE
    boot: Boot = Boot.OFF
    hname: str = ""
    uname: str = ""
    udesc: str = "---"
    line: Optional[PinLine] = field(default=None, repr=False, compare=False)
    value: Optional[str] = None

    @property
    def is_output(self) -> bool:
        return self.mode is Mode.OUTPUT

    @property
    def boot_level(self) -> int:
        return self.logic.level(self.boot.value)


@dataclass
class GlobalConfig:
    """Parsed configuration: global flags plus per-pin records."""
    allow_rename: bool = True
    pins: Dict[int, PinConfig] = field(default_factory=dict)
    valid: bool = True
    path: Optional[Path] = None

    @classmethod
    def not_configured(cls, path: Optional[Path] = None) -> GlobalConfig:
        """Empty configuration used when no config file could be read"""
        return cls(valid=False, path=path)

    def sorted_pins(self) -> List[PinConfig]:
        return [self.pins[pin_id] for pin_id in sorted(self.pins)]


@dataclass
class Request:
    """A client request, echoed back with State and Error filled in."""
    type: str
    arg1: Optional[str] = None
    arg2: Optional[str] = None
    arg3: Optional[str] = None
    state: Any = None
    error: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Request:
        def text(key: str) -> Optional[str]:
            value = data.get(key)
            return None if value is None else str(value)

        return cls(
            type=str(data.get("Type", "")),
            arg1=text("Arg1"),
            arg2=text("Arg2"),
            arg3=text("Arg3"),
            state=data.get("State"),
        )

    def to_dict(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"Type": self.type}
        for key, value in (("Arg1", self.arg1), ("Arg2", self.arg2), ("Arg3", self.arg3)):
            if value is not None:
                message[key] = value
        message["State"] = self.state
        message["Error"] = self.error
        return message
