"""
WiZ JSON-over-UDP protocol: request builders, response parsing and mode
inference.

Every parameter is optional on the wire. A field that was not set is left
out of the payload entirely so the bulb keeps its current value; zero and
``false`` are real values and are always sent.
"""

import dataclasses
import json
from typing import Any, Dict, Optional, Tuple, Union

from smartcontrol.constants import (
    BRIGHTNESS_MAX,
    BRIGHTNESS_MIN,
    COLOR_MAX,
    COLOR_MIN,
    DEFAULT_PHONE_MAC,
    TEMP_MAX,
    TEMP_MIN,
)
from smartcontrol.log import debug
from smartcontrol.models import BulbMode, ColorMode, SceneMode, TemperatureMode
from smartcontrol.scenes import scene_name

METHOD_REGISTRATION = "registration"
METHOD_GET_PILOT = "getPilot"
METHOD_SET_PILOT = "setPilot"

# python attribute -> wire key
_WIRE_NAMES = {"scene_id": "sceneId"}


def _wire_name(attr: str) -> str:
    return _WIRE_NAMES.get(attr, attr)


def _clamp(value: float, low: int, high: int) -> int:
    return max(low, min(high, int(value)))


def clamp_brightness(value: float) -> int:
    return _clamp(value, BRIGHTNESS_MIN, BRIGHTNESS_MAX)


def clamp_color(value: float) -> int:
    return _clamp(value, COLOR_MIN, COLOR_MAX)


def clamp_temperature(value: float) -> int:
    return _clamp(value, TEMP_MIN, TEMP_MAX)


def _typed(value: Any, kind: type) -> Any:
    # bool is a subclass of int; never accept one for the other
    if kind is int:
        return value if isinstance(value, int) and not isinstance(value, bool) else None
    return value if isinstance(value, kind) else None


@dataclasses.dataclass(frozen=True)
class PilotParams:
    """Parameters of a ``setPilot`` request."""

    state: Optional[bool] = None
    dimming: Optional[int] = None
    temp: Optional[int] = None
    r: Optional[int] = None
    g: Optional[int] = None
    b: Optional[int] = None
    c: Optional[int] = None
    w: Optional[int] = None
    speed: Optional[int] = None
    scene_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            _wire_name(field.name): getattr(self, field.name)
            for field in dataclasses.fields(self)
            if getattr(self, field.name) is not None
        }

    @property
    def rgb(self) -> Optional[Tuple[int, int, int]]:
        if self.r is None and self.g is None and self.b is None:
            return None
        return (self.r or 0, self.g or 0, self.b or 0)


@dataclasses.dataclass(frozen=True)
class PilotResult(PilotParams):
    """The ``result`` object of a bulb response."""

    mac: Optional[str] = None
    rssi: Optional[int] = None
    src: Optional[str] = None
    success: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PilotResult":
        kinds = {
            "state": bool,
            "success": bool,
            "mac": str,
            "src": str,
        }
        values = {}
        for field in dataclasses.fields(cls):
            raw = data.get(_wire_name(field.name))
            if raw is None:
                continue
            values[field.name] = _typed(raw, kinds.get(field.name, int))
        return cls(**values)


@dataclasses.dataclass(frozen=True)
class WizRequest:
    method: str
    params: Dict[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"method": self.method, "params": dict(self.params)}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def to_bytes(self) -> bytes:
        return self.to_json().encode("utf-8")


@dataclasses.dataclass(frozen=True)
class WizError:
    code: int
    message: str


@dataclasses.dataclass(frozen=True)
class WizResponse:
    method: Optional[str] = None
    env: Optional[str] = None
    result: Optional[PilotResult] = None
    error: Optional[WizError] = None


# Request builders

def registration_request(phone_mac: str = DEFAULT_PHONE_MAC) -> WizRequest:
    return WizRequest(METHOD_REGISTRATION, {"phoneMac": phone_mac, "register": False})


def get_pilot_request() -> WizRequest:
    return WizRequest(METHOD_GET_PILOT, {})


def set_pilot_request(params: PilotParams) -> WizRequest:
    return WizRequest(METHOD_SET_PILOT, params.to_dict())


def turn_on(
    brightness: Optional[float] = None,
    scene_id: Optional[int] = None,
    temp: Optional[int] = None,
    rgb: Optional[Tuple[int, int, int]] = None,
) -> WizRequest:
    """Power on, optionally restoring a brightness and one rendering mode.

    Only one of ``scene_id``, ``temp`` and ``rgb`` is sent, in that order of
    preference.
    """
    fields: Dict[str, Any] = {"state": True}
    if brightness is not None:
        fields["dimming"] = clamp_brightness(brightness)
    if scene_id:
        fields["scene_id"] = scene_id
    elif temp:
        fields["temp"] = clamp_temperature(temp)
    elif rgb is not None:
        fields["r"], fields["g"], fields["b"] = (clamp_color(c) for c in rgb)
    return set_pilot_request(PilotParams(**fields))


def turn_off() -> WizRequest:
    return set_pilot_request(PilotParams(state=False))


def set_brightness(brightness: float) -> WizRequest:
    return set_pilot_request(PilotParams(state=True, dimming=clamp_brightness(brightness)))


def set_color(r: int, g: int, b: int) -> WizRequest:
    return set_pilot_request(
        PilotParams(state=True, r=clamp_color(r), g=clamp_color(g), b=clamp_color(b))
    )


def set_temperature(kelvin: int) -> WizRequest:
    return set_pilot_request(PilotParams(state=True, temp=clamp_temperature(kelvin)))


def set_scene(scene_id: int) -> WizRequest:
    return set_pilot_request(PilotParams(state=True, scene_id=scene_id))


# Parsing

def parse_response(data: Union[bytes, str, None]) -> Optional[WizResponse]:
    """Decode a bulb reply.

    Returns None when the payload is not JSON, not an object, or carries
    neither a ``result`` nor an ``error`` object.
    """
    if data is None:
        return None
    try:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
        payload = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        debug(f"Could not parse response as JSON: {e}")
        return None
    if not isinstance(payload, dict):
        debug(f"Ignoring non-object response: {payload!r}")
        return None

    method = payload.get("method") if isinstance(payload.get("method"), str) else None
    env = payload.get("env") if isinstance(payload.get("env"), str) else None

    error = payload.get("error")
    if isinstance(error, dict):
        code = _typed(error.get("code"), int)
        return WizResponse(
            method=method,
            env=env,
            error=WizError(code if code is not None else -1, str(error.get("message", ""))),
        )

    result = payload.get("result")
    if not isinstance(result, dict):
        debug(f"Response has no result object: {payload!r}")
        return None
    return WizResponse(method=method, env=env, result=PilotResult.from_dict(result))


def infer_mode(result: PilotResult, previous: Optional[BulbMode]) -> Optional[BulbMode]:
    """Best-effort classification of the rendering mode a bulb reported.

    A positive sceneId wins, then a positive temperature, then any non-zero
    RGB channel. When the reply carries none of these the previous mode is
    kept.
    """
    if result.scene_id and result.scene_id > 0:
        return SceneMode(result.scene_id, scene_name(result.scene_id))
    if result.temp and result.temp > 0:
        return TemperatureMode(result.temp)
    rgb = result.rgb
    if rgb is not None and any(c > 0 for c in rgb):
        return ColorMode(*(clamp_color(c) for c in rgb))
    return previous
