"""GPIO line providers"""

from .base import LineProvider, PinLine
from .simulated import SimulatedLine, SimulatedProvider

__all__ = [
    'LineProvider',
    'PinLine',
    'SimulatedLine',
    'SimulatedProvider',
]
