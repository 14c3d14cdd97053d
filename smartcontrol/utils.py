import dataclasses
import ipaddress
import re
import socket
from pathlib import Path
from typing import Optional

import psutil

from smartcontrol.constants import DEFAULT_PHONE_MAC
from smartcontrol.exceptions import ConnectivityError


@dataclasses.dataclass(frozen=True)
class LocalNetwork:
    """IPv4 facts about the interface that reaches the LAN."""

    ip_address: str
    netmask: str
    broadcast_address: str

    @property
    def subnet_prefix(self) -> str:
        """First three octets, e.g. "192.168.1" (IP scans always cover a /24)."""
        return self.ip_address.rsplit(".", 1)[0]


def get_local_ip() -> str:
    """Get the local IP address of this computer."""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
        finally:
            s.close()
    except OSError:
        return "127.0.0.1"


def get_local_network() -> LocalNetwork:
    """Describe the local IPv4 network used for discovery.

    Raises ConnectivityError if this machine only has a loopback address.
    """
    local_ip = get_local_ip()
    if ipaddress.ip_address(local_ip).is_loopback:
        raise ConnectivityError("Not connected to a local network (no IPv4 address)")

    netmask = "255.255.255.0"
    for addrs in psutil.net_if_addrs().values():
        for addr in addrs:
            if addr.family == socket.AF_INET and addr.address == local_ip and addr.netmask:
                netmask = addr.netmask
                break

    network = ipaddress.IPv4Network(f"{local_ip}/{netmask}", strict=False)
    return LocalNetwork(
        ip_address=local_ip,
        netmask=netmask,
        broadcast_address=str(network.broadcast_address),
    )


def get_mac_address(interface: Optional[str] = None) -> Optional[str]:
    """Get a MAC address of this machine using psutil.

    Args:
        interface: Network interface name (e.g., 'eth0', 'wlan0')

    Returns:
        MAC address string or None if not found
    """
    if interface:
        addrs = psutil.net_if_addrs().get(interface, [])
        for addr in addrs:
            if addr.family == psutil.AF_LINK:
                return addr.address
        return None

    # First non-loopback interface with a real hardware address
    for name, addrs in psutil.net_if_addrs().items():
        if name == "lo":
            continue
        for addr in addrs:
            if addr.family == psutil.AF_LINK and addr.address and addr.address != "00:00:00:00:00:00":
                return addr.address
    return None


def get_phone_mac() -> str:
    """MAC of this host in the 12-hex-digit form the registration message wants."""
    mac = get_mac_address()
    if not mac:
        return DEFAULT_PHONE_MAC
    try:
        return normalize_mac_address(mac).replace(":", "")
    except ValueError:
        return DEFAULT_PHONE_MAC


def get_config_dir() -> Path:
    """Gets the configuration directory for the application."""
    return Path.home() / ".smartcontrol"


def normalize_mac_address(mac: str) -> str:
    """Return MAC in canonical uppercase colon-delimited form (XX:XX:XX:XX:XX:XX).

    Raises ValueError if input is empty or not 12 hex digits (colons/hyphens optional).
    """
    if not mac:
        raise ValueError("MAC address cannot be empty")

    candidate = mac.strip().upper()
    hex_only = re.sub(r"[:-]", "", candidate)

    if not re.fullmatch(r"[0-9A-F]{12}", hex_only):
        raise ValueError(f"Invalid MAC address format: {mac}")

    return ":".join(hex_only[i:i+2] for i in range(0, 12, 2))


def mac_key(mac: str) -> str:
    """Comparison key for MACs; placeholders that are not MACs compare as-is."""
    try:
        return normalize_mac_address(mac)
    except ValueError:
        return mac.strip().lower()
