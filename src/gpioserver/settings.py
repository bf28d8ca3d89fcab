"""Server settings loaded from YAML"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import jsonschema
import yaml

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/gpioserver/gpio.conf"
DEFAULT_PORT = 2021

SETTINGS_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "host": {"type": "string", "minLength": 1},
        "port": {"type": "integer", "minimum": 1, "maximum": 65535},
        "config_path": {"type": "string", "minLength": 1},
        "sys_name": {"type": ["string", "null"]},
        "cycle_ms": {"type": "integer", "minimum": 0},
        "client_queue_size": {"type": "integer", "minimum": 1},
        "duplicate_pins": {"type": "string", "enum": ["override", "error"]},
        "backend": {"type": "string", "enum": ["simulated", "mcp23017"]},
        "mcp": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "bus": {"type": "integer", "minimum": 0},
                "addresses": {
                    "type": "array",
                    "items": {"type": "integer", "minimum": 0x20, "maximum": 0x27},
                    "minItems": 1,
                    "maxItems": 2,
                },
                "poll_interval": {"type": "number", "exclusiveMinimum": 0},
            },
        },
        "static_dir": {"type": ["string", "null"]},
        "log_level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        "log_file": {"type": ["string", "null"]},
    },
}


@dataclass
class McpSettings:
    bus: int = 1
    addresses: List[int] = field(default_factory=lambda: [0x20, 0x21])
    poll_interval: float = 0.01


@dataclass
class ServerSettings:
    """Runtime settings for the GPIO server"""
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    config_path: str = DEFAULT_CONFIG_PATH
    sys_name: Optional[str] = None
    cycle_ms: int = 6000
    client_queue_size: int = 32
    duplicate_pins: str = "override"
    backend: str = "simulated"
    mcp: McpSettings = field(default_factory=McpSettings)
    static_dir: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> ServerSettings:
        """Validate a settings mapping and build ServerSettings"""
        data = dict(data or {})
        try:
            jsonschema.validate(data, SETTINGS_SCHEMA)
        except jsonschema.ValidationError as e:
            path = ".".join(str(p) for p in e.absolute_path) or "settings"
            raise ConfigError(f"Invalid setting {path}: {e.message}") from None

        mcp = McpSettings(**data.pop("mcp", {}))
        return cls(mcp=mcp, **data)

    @classmethod
    def load(cls, path: Union[str, Path]) -> ServerSettings:
        """Load settings from a YAML file"""
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read settings file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in settings file {path}: {e}") from e

        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Settings file {path} must contain a mapping")
        logger.info(f"Loaded settings from {path}")
        return cls.from_dict(data)

    def override(self, **values: Any) -> ServerSettings:
        """Apply non-None overrides (e.g. from command line flags)"""
        known = {f.name for f in fields(self)}
        for name, value in values.items():
            if name not in known:
                raise ValueError(f"Unknown setting: {name}")
            if value is not None:
                setattr(self, name, value)
        return self
