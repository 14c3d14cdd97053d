"""Models."""

import dataclasses
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from smartcontrol.constants import DEFAULT_BRIGHTNESS, DEFAULT_WATTAGE

RGB = Tuple[int, int, int]


class ConnectionType(str, Enum):
    WIFI = "wifi"
    BLE = "ble"


@dataclasses.dataclass(frozen=True)
class SceneMode:
    """A firmware scene is driving the bulb."""

    scene_id: int
    name: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class ColorMode:
    """Explicit RGB colour."""

    r: int
    g: int
    b: int

    @property
    def rgb(self) -> RGB:
        return (self.r, self.g, self.b)


@dataclasses.dataclass(frozen=True)
class TemperatureMode:
    """White light at a colour temperature in Kelvin."""

    kelvin: int


BulbMode = Union[SceneMode, ColorMode, TemperatureMode]


def mode_to_dict(mode: Optional[BulbMode]) -> Optional[Dict[str, Any]]:
    if isinstance(mode, SceneMode):
        return {"type": "scene", "sceneId": mode.scene_id, "name": mode.name}
    if isinstance(mode, ColorMode):
        return {"type": "color", "r": mode.r, "g": mode.g, "b": mode.b}
    if isinstance(mode, TemperatureMode):
        return {"type": "temperature", "kelvin": mode.kelvin}
    return None


def mode_from_dict(data: Optional[Dict[str, Any]]) -> Optional[BulbMode]:
    if not isinstance(data, dict):
        return None
    kind = data.get("type")
    if kind == "scene":
        return SceneMode(int(data["sceneId"]), data.get("name"))
    if kind == "color":
        return ColorMode(int(data["r"]), int(data["g"]), int(data["b"]))
    if kind == "temperature":
        return TemperatureMode(int(data["kelvin"]))
    return None


@dataclasses.dataclass(frozen=True)
class Bulb:
    """A saved bulb and its last known state.

    ``mode`` is the one authoritative rendering mode. ``last_rgb`` and
    ``last_kelvin`` remember the most recent explicit colour and white
    temperature so they can be offered again after a scene; they are not
    active unless ``mode`` says so.
    """

    id: str
    name: str
    ip_address: str
    mac_address: Optional[str] = None
    is_on: bool = False
    brightness: float = DEFAULT_BRIGHTNESS
    mode: Optional[BulbMode] = None
    last_rgb: Optional[RGB] = None
    last_kelvin: Optional[int] = None
    is_available: bool = True
    connection_type: ConnectionType = ConnectionType.WIFI
    wattage: float = DEFAULT_WATTAGE

    @property
    def scene_name(self) -> Optional[str]:
        return self.mode.name if isinstance(self.mode, SceneMode) else None

    @property
    def rgb(self) -> Optional[RGB]:
        return self.mode.rgb if isinstance(self.mode, ColorMode) else None

    @property
    def temperature(self) -> Optional[int]:
        return self.mode.kelvin if isinstance(self.mode, TemperatureMode) else None

    @property
    def is_ble(self) -> bool:
        return self.connection_type == ConnectionType.BLE

    def with_mode(self, mode: Optional[BulbMode]) -> "Bulb":
        """Return a copy whose active mode is ``mode``."""
        changes: Dict[str, Any] = {"mode": mode}
        if isinstance(mode, ColorMode):
            changes["last_rgb"] = mode.rgb
        elif isinstance(mode, TemperatureMode):
            changes["last_kelvin"] = mode.kelvin
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "ipAddress": self.ip_address,
            "macAddress": self.mac_address,
            "isOn": self.is_on,
            "brightness": self.brightness,
            "mode": mode_to_dict(self.mode),
            "lastRgb": list(self.last_rgb) if self.last_rgb else None,
            "lastKelvin": self.last_kelvin,
            "isAvailable": self.is_available,
            "connectionType": self.connection_type.value,
            "wattage": self.wattage,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bulb":
        last_rgb = data.get("lastRgb")
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            ip_address=data.get("ipAddress", ""),
            mac_address=data.get("macAddress"),
            is_on=bool(data.get("isOn", False)),
            brightness=float(data.get("brightness", DEFAULT_BRIGHTNESS)),
            mode=mode_from_dict(data.get("mode")),
            last_rgb=tuple(int(c) for c in last_rgb) if last_rgb else None,  # type: ignore[arg-type]
            last_kelvin=data.get("lastKelvin"),
            is_available=bool(data.get("isAvailable", True)),
            connection_type=ConnectionType(data.get("connectionType", ConnectionType.WIFI.value)),
            wattage=float(data.get("wattage", DEFAULT_WATTAGE)),
        )


@dataclasses.dataclass(frozen=True)
class DiscoveredBulb:
    """Representation of discovered bulb."""

    name: str
    ip_address: str
    mac_address: str
    is_ble: bool = False


@dataclasses.dataclass(frozen=True)
class BulbGroup:
    """A named set of bulbs controlled together."""

    id: str
    name: str
    bulb_ids: Tuple[str, ...] = ()
    is_on: bool = False
    brightness: float = DEFAULT_BRIGHTNESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "bulbIds": list(self.bulb_ids),
            "isOn": self.is_on,
            "brightness": self.brightness,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BulbGroup":
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            bulb_ids=tuple(data.get("bulbIds") or ()),
            is_on=bool(data.get("isOn", False)),
            brightness=float(data.get("brightness", DEFAULT_BRIGHTNESS)),
        )


class DiscoveryState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    SUCCESS = "success"
    NO_DEVICES_FOUND = "no_devices_found"
    ERROR = "error"


@dataclasses.dataclass(frozen=True)
class DiscoveryResult:
    """Outcome of merging the discovery strategies."""

    new: Tuple[DiscoveredBulb, ...] = ()
    already_added: Tuple[DiscoveredBulb, ...] = ()
