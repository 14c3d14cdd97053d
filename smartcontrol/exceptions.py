"""Exceptions raised by the SmartControl library."""


class SmartControlError(Exception):
    """Base class for SmartControl errors."""


class WizDeviceError(SmartControlError):
    """The bulb understood the request but answered with an error object."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"Bulb rejected request ({code}): {message}")
        self.code = code
        self.message = message


class UnknownSceneError(SmartControlError, ValueError):
    """Scene name is not in the firmware scene table."""


class UnsupportedConnectionError(SmartControlError):
    """Control was requested over a transport that has no command path (BLE)."""


class ConnectivityError(SmartControlError):
    """The host has no usable local network for discovery."""


class BulbNotFoundError(SmartControlError, KeyError):
    """No saved bulb or group with the requested identifier."""
