"""GPIO configuration file parsing, rendering and binding

The configuration is a line-oriented text file:

    # Comments start with a hash
    AllowRename Yes

    GPIO 7
        Mode  = Input
        Logic = Invert
        Pull  = High
        HName = "Relay 1"

Keywords are case-insensitive. Each enumerated field is matched against its
candidate list; the first candidate is the default when the field is
missing or empty.
"""

from __future__ import annotations
import logging
import os
import re
import tempfile
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Type, TypeVar, Union

from .backends.base import EdgeCallback, LineProvider
from .exceptions import ConfigError, LineError, PersistenceError
from .types import MAX_PIN_ID, MIN_PIN_ID, Boot, GlobalConfig, Logic, Mode, PinConfig, Pull

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

YES_NO = ("Yes", "No")
DEFAULT_UDESC = "---"

_GPIO_RE = re.compile(r"^GPIO\s+(\S+)$", re.IGNORECASE)
_ALLOW_RENAME_RE = re.compile(r"^AllowRename(?:(?:\s*=\s*|\s+)(.*))?$", re.IGNORECASE)
_FIELD_RE = re.compile(r"^(\w+)\s*=\s*(.*)$")
_PIN_ID_RE = re.compile(r"^[0-9]+$")

_ENUM_FIELDS: Dict[str, Type[Enum]] = {
    "mode": Mode,
    "logic": Logic,
    "pull": Pull,
    "boot": Boot,
}
_TEXT_FIELDS = ("hname", "uname", "udesc")


class DuplicatePolicy(Enum):
    """What to do when a GPIO id is declared twice"""
    OVERRIDE = "override"
    ERROR = "error"


def default_name(pin_id: int) -> str:
    return f"GPIO{pin_id}"


def canonicalize(enum_cls: Type[E], raw: Optional[str], field_name: str, pin_id: Optional[int] = None) -> E:
    """Match raw text case-insensitively against an enum's candidates.

    Missing or empty text yields the first candidate. Anything else that does
    not match raises ConfigError naming the pin, field and literal value.
    """
    candidates = list(enum_cls)
    if raw is None or not raw.strip():
        return candidates[0]

    wanted = raw.strip().lower()
    for candidate in candidates:
        if candidate.value.lower() == wanted:
            return candidate

    allowed = ", ".join(c.value for c in candidates)
    where = f"GPIO {pin_id}: " if pin_id is not None else ""
    raise ConfigError(
        f"{where}invalid {field_name} value '{raw.strip()}' (expected one of {allowed})",
        pin_id=pin_id,
    )


def canonicalize_yes_no(raw: Optional[str], field_name: str) -> bool:
    if raw is None or not raw.strip():
        return True
    wanted = raw.strip().lower()
    if wanted == "yes":
        return True
    if wanted == "no":
        return False
    raise ConfigError(f"invalid {field_name} value '{raw.strip()}' (expected one of Yes, No)")


def strip_comment(line: str) -> str:
    """Drop everything after a '#' that is not inside double quotes"""
    in_quotes = False
    for i, ch in enumerate(line):
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "#" and not in_quotes:
            return line[:i]
    return line


def unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1]
    return value


def parse_pin_id(raw: str, line_no: Optional[int] = None) -> int:
    if not _PIN_ID_RE.match(raw):
        raise ConfigError(f"GPIO id '{raw}' is not an integer", line_no=line_no)
    pin_id = int(raw)
    if not MIN_PIN_ID <= pin_id <= MAX_PIN_ID:
        raise ConfigError(
            f"GPIO id {pin_id} out of range ({MIN_PIN_ID}-{MAX_PIN_ID})", pin_id=pin_id, line_no=line_no
        )
    return pin_id


def _logical_lines(text: str) -> Iterator[Tuple[int, str]]:
    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = strip_comment(raw).strip()
        if line:
            yield line_no, line


def _build_pin(pin_id: int, fields: Dict[str, str]) -> PinConfig:
    enums = {
        name: canonicalize(enum_cls, fields.get(name), enum_cls.__name__, pin_id)
        for name, enum_cls in _ENUM_FIELDS.items()
    }
    return PinConfig(
        id=pin_id,
        mode=enums["mode"],
        logic=enums["logic"],
        pull=enums["pull"],
        boot=enums["boot"],
        hname=fields.get("hname") or default_name(pin_id),
        uname=fields.get("uname") or default_name(pin_id),
        udesc=fields.get("udesc") or DEFAULT_UDESC,
    )


def parse_config(text: str, duplicates: DuplicatePolicy = DuplicatePolicy.OVERRIDE) -> GlobalConfig:
    """Parse configuration text into a validated GlobalConfig (no hardware access)"""
    config = GlobalConfig()
    blocks: List[Tuple[int, int, Dict[str, str]]] = []
    current: Optional[Dict[str, str]] = None

    for line_no, line in _logical_lines(text):
        match = _GPIO_RE.match(line)
        if match:
            pin_id = parse_pin_id(match.group(1), line_no)
            current = {}
            blocks.append((line_no, pin_id, current))
            continue

        match = _ALLOW_RENAME_RE.match(line)
        if match:
            try:
                config.allow_rename = canonicalize_yes_no(match.group(1), "AllowRename")
            except ConfigError as e:
                raise ConfigError(str(e), line_no=line_no) from None
            continue

        match = _FIELD_RE.match(line)
        if match:
            if current is None:
                raise ConfigError(f"'{match.group(1)}' appears outside a GPIO block", line_no=line_no)
            key = match.group(1).lower()
            if key not in _ENUM_FIELDS and key not in _TEXT_FIELDS:
                raise ConfigError(f"unknown field '{match.group(1)}'", pin_id=blocks[-1][1], line_no=line_no)
            current[key] = unquote(match.group(2))
            continue

        raise ConfigError(f"unrecognized directive '{line}'", line_no=line_no)

    for line_no, pin_id, fields in blocks:
        if pin_id in config.pins:
            if duplicates is DuplicatePolicy.ERROR:
                raise ConfigError(f"GPIO {pin_id} is declared more than once", pin_id=pin_id, line_no=line_no)
            logger.warning(f"GPIO {pin_id} declared again on line {line_no}; later declaration wins")
        config.pins[pin_id] = _build_pin(pin_id, fields)

    return config


def _quote(value: str) -> str:
    return f'"{value}"'


def format_config(config: GlobalConfig) -> str:
    """Render a GlobalConfig in the configuration file format"""
    lines = [
        "#",
        "# GPIO server configuration",
        "#",
        f"AllowRename {YES_NO[0] if config.allow_rename else YES_NO[1]}",
    ]
    for pin in config.sorted_pins():
        lines.extend([
            "",
            f"GPIO {pin.id}",
            f"    Mode  = {pin.mode.value}",
            f"    Logic = {pin.logic.value}",
        ])
        if pin.mode is Mode.INPUT:
            lines.append(f"    Pull  = {pin.pull.value}")
        else:
            lines.append(f"    Boot  = {pin.boot.value}")
        lines.extend([
            f"    HName = {_quote(pin.hname)}",
            f"    UName = {_quote(pin.uname)}",
            f"    UDesc = {_quote(pin.udesc)}",
        ])
    return "\n".join(lines) + "\n"


class ConfigFile:
    """The single human-edited configuration file"""

    def __init__(self, path: Union[str, Path, None]):
        self.path = Path(path) if path is not None else None

    def read(self) -> Optional[str]:
        """Return the file text, or None if it is missing or unreadable"""
        if self.path is None:
            return None
        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Cannot read config file {self.path}: {e}")
            return None

    def write(self, text: str) -> None:
        """Replace the file contents atomically"""
        if self.path is None:
            raise PersistenceError("No configuration file to save to")
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=".gpioconf-", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, self.path)
            tmp_name = None
            logger.info(f"Saved configuration to {self.path}")
        except OSError as e:
            raise PersistenceError(f"Cannot save configuration to {self.path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)


class ConfigParser:
    """Parses configuration text and binds one line per pin

    The line provider is injected so that tests can bind simulated lines.
    """

    def __init__(
        self,
        provider: LineProvider,
        on_edge: Optional[EdgeCallback] = None,
        duplicates: DuplicatePolicy = DuplicatePolicy.OVERRIDE,
    ):
        self.provider = provider
        self.on_edge = on_edge
        self.duplicates = duplicates

    def parse(self, text: str) -> GlobalConfig:
        return parse_config(text, self.duplicates)

    async def load(self, config_file: ConfigFile) -> GlobalConfig:
        """Parse the file and bind lines; a missing file gives the not-configured state"""
        text = config_file.read()
        if text is None:
            logger.warning("No usable configuration file; starting with no GPIOs")
            return GlobalConfig.not_configured(config_file.path)

        config = self.parse(text)
        config.path = config_file.path
        await self.bind(config)
        logger.info(f"Configured {len(config.pins)} GPIOs from {config_file.path}")
        return config

    async def bind(self, config: GlobalConfig) -> None:
        for pin in config.sorted_pins():
            try:
                await self._bind_pin(pin)
            except LineError as e:
                raise ConfigError(f"GPIO {pin.id}: cannot configure line: {e}", pin_id=pin.id) from e

    async def _bind_pin(self, pin: PinConfig) -> None:
        line = await self.provider.open_line(pin.id)
        pin.line = line

        if pin.mode is Mode.INPUT:
            await line.set_pull(pin.pull)
            await line.set_mode(Mode.INPUT)
            if self.on_edge is not None:
                line.on_edge_change(self.on_edge)
            return

        # Assert the boot level before and after switching to drive mode
        level = pin.boot_level
        await line.write(level)
        await line.set_mode(Mode.OUTPUT)
        await line.write(level)
