"""Exception hierarchy for gpioserver"""

from typing import Optional


class GpioServerError(Exception):
    """Base exception for gpioserver"""

    pass


class ConfigError(GpioServerError):
    """Malformed or out-of-range configuration"""

    def __init__(self, message: str, pin_id: Optional[int] = None, line_no: Optional[int] = None):
        if line_no is not None:
            message = f"line {line_no}: {message}"
        super().__init__(message)
        self.pin_id = pin_id
        self.line_no = line_no


class CommandError(GpioServerError):
    """A request that cannot be carried out as asked"""

    pass


class PersistenceError(GpioServerError):
    """The configuration file could not be written"""

    pass


class LineError(GpioServerError):
    """Hardware I/O failure on a GPIO line"""

    def __init__(self, message: str, pin_id: Optional[int] = None):
        super().__init__(message)
        self.pin_id = pin_id
