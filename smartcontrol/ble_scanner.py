"""
BLE advertisement scan for smart bulbs.

Only discovery is supported over Bluetooth; bulbs found here are adopted
as BLE bulbs but cannot be controlled by this library.
"""

import asyncio
from typing import Iterable, List, Optional

from bleak import BleakScanner

from smartcontrol.constants import BLE_NAME_MARKERS, BLE_SCAN_DURATION, TUYA_SERVICE_UUID
from smartcontrol.log import debug
from smartcontrol.models import DiscoveredBulb

UNKNOWN_DEVICE = "Unknown Device"


def is_tuya_device(service_uuids: Iterable[str]) -> bool:
    return any(uuid.lower() == TUYA_SERVICE_UUID for uuid in service_uuids)


def is_smart_bulb(name: Optional[str], service_uuids: Iterable[str]) -> bool:
    """Name/UUID heuristic for advertisements that look like a light."""
    lowered = (name or "").lower()
    if any(marker.lower() in lowered for marker in BLE_NAME_MARKERS):
        return True
    return is_tuya_device(service_uuids)


def bulb_from_advertisement(
    address: str, name: Optional[str], service_uuids: Iterable[str]
) -> Optional[DiscoveredBulb]:
    uuids = list(service_uuids)
    if not is_smart_bulb(name, uuids):
        return None
    display_name = name or UNKNOWN_DEVICE
    if display_name == UNKNOWN_DEVICE and is_tuya_device(uuids):
        display_name = "Wipro/Tuya Light"
    # BLE has no IP; the device address stands in for both
    return DiscoveredBulb(
        name=display_name,
        ip_address=address,
        mac_address=address,
        is_ble=True,
    )


async def async_scan_ble(duration: float = BLE_SCAN_DURATION) -> List[DiscoveredBulb]:
    found = await BleakScanner.discover(timeout=duration, return_adv=True)
    bulbs: List[DiscoveredBulb] = []
    for device, adv in found.values():
        name = device.name or adv.local_name
        debug(f"BLE scanned: {name} - {device.address} - UUIDs: {adv.service_uuids}")
        bulb = bulb_from_advertisement(device.address, name, adv.service_uuids or [])
        if bulb is not None:
            bulbs.append(bulb)
    return bulbs


def scan_ble(duration: float = BLE_SCAN_DURATION) -> List[DiscoveredBulb]:
    """Blocking BLE scan; runs its own event loop on the calling thread."""
    return asyncio.run(async_scan_ble(duration))
