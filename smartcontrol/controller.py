"""
Bulb control over the shared UDP socket.

Every operation takes a ``Bulb`` and returns an updated copy. Cached state
is updated as soon as the command is on the wire; ``is_available`` tells
whether the bulb acknowledged it. A bulb that answers with an error object
raises ``WizDeviceError`` and its cached state is left as it was.
"""

import dataclasses
from typing import Optional

from smartcontrol import protocol
from smartcontrol.constants import SOCKET_TIMEOUT, WIZ_PORT
from smartcontrol.exceptions import UnknownSceneError, UnsupportedConnectionError, WizDeviceError
from smartcontrol.log import debug, warn
from smartcontrol.models import Bulb, ColorMode, SceneMode, TemperatureMode
from smartcontrol.protocol import PilotResult, WizRequest, WizResponse
from smartcontrol.scenes import scene_id as lookup_scene_id
from smartcontrol.scenes import scene_name
from smartcontrol.socket_manager import WizSocketManager


def apply_status(bulb: Bulb, result: PilotResult) -> Bulb:
    """Fold a ``getPilot`` result into cached state."""
    mode = protocol.infer_mode(result, bulb.mode)
    updated = bulb.with_mode(mode) if mode is not bulb.mode else bulb
    return dataclasses.replace(
        updated,
        is_on=bulb.is_on if result.state is None else result.state,
        brightness=bulb.brightness if result.dimming is None else float(result.dimming),
        mac_address=bulb.mac_address or result.mac,
        is_available=True,
    )


class BulbController:
    """Translate intents into ``setPilot``/``getPilot`` exchanges."""

    def __init__(
        self,
        transport: Optional[WizSocketManager] = None,
        port: int = WIZ_PORT,
        timeout: float = SOCKET_TIMEOUT,
    ) -> None:
        self.transport = transport or WizSocketManager(timeout=timeout)
        self.port = port
        self.timeout = timeout

    def _exchange(self, bulb: Bulb, request: WizRequest) -> Optional[WizResponse]:
        if bulb.is_ble:
            raise UnsupportedConnectionError(f"{bulb.name} is a BLE bulb; only Wi-Fi bulbs can be controlled")
        reply = self.transport.send_and_receive(
            request.to_bytes(), bulb.ip_address, self.port, timeout=self.timeout
        )
        response = protocol.parse_response(reply)
        if response is not None and response.error is not None:
            raise WizDeviceError(response.error.code, response.error.message)
        return response

    def _command(self, bulb: Bulb, request: WizRequest, **changes) -> Bulb:
        response = self._exchange(bulb, request)
        if response is None:
            debug(f"No acknowledgement from {bulb.name} ({bulb.ip_address})")
        return dataclasses.replace(bulb, is_available=response is not None, **changes)

    def turn_on(self, bulb: Bulb) -> Bulb:
        """Power on and restore the last known brightness and mode."""
        mode = bulb.mode
        request = protocol.turn_on(
            brightness=bulb.brightness,
            scene_id=mode.scene_id if isinstance(mode, SceneMode) else None,
            temp=mode.kelvin if isinstance(mode, TemperatureMode) else None,
            rgb=mode.rgb if isinstance(mode, ColorMode) else None,
        )
        return self._command(bulb, request, is_on=True)

    def turn_off(self, bulb: Bulb) -> Bulb:
        return self._command(bulb, protocol.turn_off(), is_on=False)

    def set_power(self, bulb: Bulb, on: bool) -> Bulb:
        return self.turn_on(bulb) if on else self.turn_off(bulb)

    def toggle(self, bulb: Bulb) -> Bulb:
        return self.set_power(bulb, not bulb.is_on)

    def set_brightness(self, bulb: Bulb, brightness: float) -> Bulb:
        request = protocol.set_brightness(brightness)
        return self._command(
            bulb, request, is_on=True, brightness=float(max(0.0, min(100.0, brightness)))
        )

    def set_color(self, bulb: Bulb, r: int, g: int, b: int) -> Bulb:
        request = protocol.set_color(r, g, b)
        params = request.params
        updated = self._command(bulb, request, is_on=True)
        return updated.with_mode(ColorMode(params["r"], params["g"], params["b"]))

    def set_temperature(self, bulb: Bulb, kelvin: int) -> Bulb:
        request = protocol.set_temperature(kelvin)
        updated = self._command(bulb, request, is_on=True)
        return updated.with_mode(TemperatureMode(request.params["temp"]))

    def set_scene(self, bulb: Bulb, name: str) -> Bulb:
        """Activate a firmware scene by name.

        Raises UnknownSceneError for names missing from the scene table;
        nothing is sent in that case.
        """
        sid = lookup_scene_id(name)
        if not sid:
            raise UnknownSceneError(f"Unknown scene: {name!r}")
        updated = self._command(bulb, protocol.set_scene(sid), is_on=True)
        return updated.with_mode(SceneMode(sid, scene_name(sid)))

    def fetch_pilot(self, bulb: Bulb) -> Optional[PilotResult]:
        """Query live state; None when the bulb did not answer usefully."""
        response = self._exchange(bulb, protocol.get_pilot_request())
        return response.result if response is not None else None

    def fetch_status(self, bulb: Bulb) -> Bulb:
        """Refresh one bulb. Unreachable bulbs keep their state but become unavailable."""
        try:
            result = self.fetch_pilot(bulb)
        except WizDeviceError as e:
            warn(f"{bulb.name} rejected status query: {e.message}")
            return bulb
        if result is None:
            return dataclasses.replace(bulb, is_available=False)
        return apply_status(bulb, result)

    def close(self) -> None:
        self.transport.close()
