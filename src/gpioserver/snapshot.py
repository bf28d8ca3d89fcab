"""Client-facing view of the registry"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .registry import PinRegistry


@dataclass(frozen=True)
class PinView:
    id: int
    hname: str
    uname: str
    udesc: str
    mode: str
    value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        view: Dict[str, Any] = {
            "ID": self.id,
            "HName": self.hname,
            "UName": self.uname,
            "UDesc": self.udesc,
            "Mode": self.mode,
        }
        if self.value is not None:
            view["Value"] = self.value
        return view


@dataclass(frozen=True)
class PublicSnapshot:
    sys_name: str
    allow_rename: bool
    pins: List[PinView] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "SysName": self.sys_name,
            "AllowRename": "Yes" if self.allow_rename else "No",
            "GPIOInfo": [pin.to_dict() for pin in self.pins],
        }


def build_snapshot(registry: PinRegistry, sys_name: str) -> PublicSnapshot:
    """Project the registry onto the fields clients may see, sorted by id"""
    return PublicSnapshot(
        sys_name=sys_name,
        allow_rename=registry.allow_rename,
        pins=[
            PinView(
                id=pin.id,
                hname=pin.hname,
                uname=pin.uname,
                udesc=pin.udesc,
                mode=pin.mode.value,
                value=pin.value,
            )
            for pin in registry.pins()
        ],
    )
