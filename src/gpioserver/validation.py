"""Validation of client messages"""

from __future__ import annotations
from typing import Any, Dict, List

import jsonschema

from .exceptions import CommandError

_ARG = {"type": ["string", "number", "null"]}

REQUEST_SCHEMA = {
    "type": "object",
    "required": ["Type"],
    "properties": {
        "Type": {"type": "string", "minLength": 1},
        "Arg1": _ARG,
        "Arg2": _ARG,
        "Arg3": _ARG,
    },
}

GPIO_INFO_SCHEMA = {
    "type": "object",
    "required": ["GPIOInfo"],
    "properties": {
        "GPIOInfo": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["ID"],
                "properties": {
                    "ID": {"type": ["integer", "string"]},
                    "UName": {"type": "string"},
                    "UDesc": {"type": "string"},
                },
            },
        }
    },
}


def _describe(error: jsonschema.ValidationError) -> str:
    path = ".".join(str(p) for p in error.absolute_path)
    return f"{path}: {error.message}" if path else error.message


def validate_request(message: Any) -> Dict[str, Any]:
    """Check the shape of an incoming request"""
    try:
        jsonschema.validate(message, REQUEST_SCHEMA)
    except jsonschema.ValidationError as e:
        raise CommandError(f"Malformed request: {_describe(e)}") from None
    return message


def validate_gpio_info(state: Any) -> List[Dict[str, Any]]:
    """Check a SetGPIOInfo payload and return its per-pin entries"""
    try:
        jsonschema.validate(state, GPIO_INFO_SCHEMA)
    except jsonschema.ValidationError as e:
        raise CommandError(f"Malformed GPIO info: {_describe(e)}") from None
    return state["GPIOInfo"]
