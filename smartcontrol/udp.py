import json
import socket
from typing import Any, Optional

from smartcontrol.constants import PROBE_TIMEOUT, RECV_BUFFER_SIZE, WIZ_PORT
from smartcontrol.log import debug, recv, send, warn
from smartcontrol.models import DiscoveredBulb
from smartcontrol.protocol import get_pilot_request


def send_udp_command(
    bulb_ip: str, payload_dict: dict, timeout: float = 3, port: int = WIZ_PORT
) -> Optional[dict]:
    """Send a raw JSON command to the bulb on a throwaway socket.

    Returns the parsed JSON response dict, or None on failure.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.settimeout(timeout)

            json_payload = json.dumps(payload_dict)
            send("UDP", json_payload, f"{bulb_ip}:{port}")
            s.sendto(json_payload.encode("utf-8"), (bulb_ip, port))

            try:
                data, addr = s.recvfrom(RECV_BUFFER_SIZE)
            except socket.timeout:
                return None
            response_str = data.decode("utf-8", errors="replace")
            recv("UDP", response_str, f"{addr[0]}:{addr[1]}")
            try:
                response = json.loads(response_str)
            except json.JSONDecodeError:
                warn(f"Could not parse response as JSON: {response_str}")
                return None
            return response if isinstance(response, dict) else None
    except (OSError, ValueError) as e:
        warn(f"Error sending UDP command: {e}")
        return None


def discovered_bulb_from_response(payload: Any, ip_address: str) -> Optional[DiscoveredBulb]:
    """Turn any JSON reply from ``ip_address`` into a discovery candidate.

    Firmware that omits its MAC still gets a stable placeholder identifier
    derived from the IP.
    """
    if isinstance(payload, (bytes, str)):
        try:
            payload = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
    if not isinstance(payload, dict):
        return None

    result = payload.get("result")
    mac = result.get("mac") if isinstance(result, dict) else None
    if not isinstance(mac, str) or not mac:
        mac = payload.get("mac")
    if not isinstance(mac, str) or not mac:
        mac = f"unknown_{ip_address.replace('.', '_')}"

    last_octet = ip_address.rsplit(".", 1)[-1]
    return DiscoveredBulb(
        name=f"WiZ Bulb ({last_octet})",
        ip_address=ip_address,
        mac_address=mac,
    )


def probe_bulb(
    ip_address: str, timeout: float = PROBE_TIMEOUT, port: int = WIZ_PORT
) -> Optional[DiscoveredBulb]:
    """Ask one address for its pilot state. Returns None for anything but a bulb."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.settimeout(timeout)
            s.sendto(get_pilot_request().to_bytes(), (ip_address, port))
            data, _ = s.recvfrom(RECV_BUFFER_SIZE)
    except (OSError, ValueError):
        return None

    bulb = discovered_bulb_from_response(data, ip_address)
    if bulb is not None:
        debug(f"Probe hit at {ip_address}: {bulb.mac_address}")
    return bulb
