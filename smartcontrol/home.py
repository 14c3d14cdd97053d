"""
SmartHome: one object that owns the saved bulbs, the controller, discovery
and the refresh loop, and keeps them consistent.

Every control call looks the bulb up, sends the command, writes the new
state through to the repository and starts the bulb's poll cooldown.
"""

import dataclasses
import ipaddress
import uuid
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from smartcontrol.constants import DEFAULT_WATTAGE
from smartcontrol.controller import BulbController
from smartcontrol.discovery import BulbDiscovery
from smartcontrol.exceptions import BulbNotFoundError, SmartControlError, UnknownSceneError
from smartcontrol.log import debug, info, warn
from smartcontrol.models import Bulb, BulbGroup, ConnectionType, DiscoveredBulb, DiscoveryResult
from smartcontrol.refresh import RefreshLoop
from smartcontrol.scenes import scene_id
from smartcontrol.storage import DeviceRepository, EnergyRepository
from smartcontrol.utils import mac_key

BulbAction = Callable[[Bulb], Bulb]


class SmartHome:
    def __init__(
        self,
        repository: DeviceRepository,
        energy: EnergyRepository,
        controller: Optional[BulbController] = None,
        discovery: Optional[BulbDiscovery] = None,
        refresh: Optional[RefreshLoop] = None,
    ) -> None:
        self.repository = repository
        self.energy = energy
        self.controller = controller or BulbController()
        self.discovery = discovery or BulbDiscovery()
        self.refresh = refresh or RefreshLoop(repository, energy, self.controller)

    @property
    def bulbs(self) -> Tuple[Bulb, ...]:
        return self.repository.bulbs

    @property
    def groups(self) -> Tuple[BulbGroup, ...]:
        return self.repository.groups

    def get_bulb(self, key: str) -> Bulb:
        """Find a saved bulb by id first, then by MAC, IP or name."""
        try:
            return self.repository.get_bulb(key)
        except BulbNotFoundError:
            return self.repository.find_bulb(key)

    # Bulb management

    def add_bulb(
        self,
        name: str,
        ip_address: str,
        mac_address: Optional[str] = None,
        wattage: float = DEFAULT_WATTAGE,
    ) -> Bulb:
        try:
            ipaddress.IPv4Address(ip_address.strip())
        except ValueError:
            raise ValueError(f"Invalid IPv4 address: {ip_address!r}") from None
        ip_address = ip_address.strip()
        bulb = Bulb(
            id=str(uuid.uuid4()),
            name=name,
            ip_address=ip_address,
            mac_address=mac_address,
            wattage=wattage,
        )
        self.repository.add_bulb(bulb)
        info(f"Added bulb {name} ({ip_address})")
        return bulb

    def delete_bulb(self, bulb_id: str) -> None:
        self.repository.delete_bulb(self.get_bulb(bulb_id).id)

    def delete_bulbs(self, bulb_ids: Iterable[str]) -> None:
        self.repository.delete_bulbs([self.get_bulb(key).id for key in bulb_ids])

    def update_bulb_wattage(self, bulb_id: str, wattage: float) -> Bulb:
        if wattage <= 0:
            raise ValueError("Wattage must be positive")
        bulb = dataclasses.replace(self.get_bulb(bulb_id), wattage=float(wattage))
        self.repository.update_bulb(bulb)
        return bulb

    def rename_bulb(self, bulb_id: str, name: str) -> Bulb:
        if not name.strip():
            raise ValueError("Name cannot be empty")
        bulb = dataclasses.replace(self.get_bulb(bulb_id), name=name.strip())
        self.repository.update_bulb(bulb)
        return bulb

    # Bulb control

    def _control(self, key: str, action: BulbAction) -> Bulb:
        bulb = self.get_bulb(key)
        # Cooldown starts before the send so an in-flight poll cannot win
        self.refresh.mark_update(bulb.id)
        updated = action(bulb)
        self.repository.update_bulb(updated)
        self.refresh.mark_update(bulb.id)
        return updated

    def toggle_bulb(self, bulb_id: str) -> Bulb:
        return self._control(bulb_id, self.controller.toggle)

    def set_power(self, bulb_id: str, on: bool) -> Bulb:
        return self._control(bulb_id, lambda b: self.controller.set_power(b, on))

    def set_brightness(self, bulb_id: str, brightness: float) -> Bulb:
        return self._control(bulb_id, lambda b: self.controller.set_brightness(b, brightness))

    def set_color(self, bulb_id: str, r: int, g: int, b: int) -> Bulb:
        return self._control(bulb_id, lambda bulb: self.controller.set_color(bulb, r, g, b))

    def set_temperature(self, bulb_id: str, kelvin: int) -> Bulb:
        return self._control(bulb_id, lambda b: self.controller.set_temperature(b, kelvin))

    def set_scene(self, bulb_id: str, name: str) -> Bulb:
        return self._control(bulb_id, lambda b: self.controller.set_scene(b, name))

    def refresh_bulb(self, bulb_id: str) -> Bulb:
        """Query one bulb now and store what it reports."""
        updated = self.controller.fetch_status(self.get_bulb(bulb_id))
        self.repository.update_bulb(updated)
        return updated

    # Groups

    def create_group(self, name: str, bulb_ids: Iterable[str]) -> BulbGroup:
        members = tuple(self.get_bulb(key).id for key in bulb_ids)
        group = BulbGroup(id=str(uuid.uuid4()), name=name, bulb_ids=members)
        self.repository.add_group(group)
        info(f"Created group {name} with {len(members)} bulbs")
        return group

    def delete_group(self, group_id: str) -> None:
        self.repository.delete_group(self.repository.get_group(group_id).id)

    def _fan_out(self, group: BulbGroup, action: BulbAction) -> Dict[str, Exception]:
        """Apply ``action`` to every member; one member failing does not stop the rest."""
        failures: Dict[str, Exception] = {}
        for bulb_id in group.bulb_ids:
            try:
                self._control(bulb_id, action)
            except (SmartControlError, OSError, ValueError) as e:
                warn(f"Group {group.name}: bulb {bulb_id} failed: {e}")
                failures[bulb_id] = e
        return failures

    def set_group_power(self, group_id: str, on: bool) -> Dict[str, Exception]:
        group = dataclasses.replace(self.repository.get_group(group_id), is_on=on)
        self.repository.update_group(group)
        return self._fan_out(group, lambda b: self.controller.set_power(b, on))

    def toggle_group(self, group_id: str) -> Dict[str, Exception]:
        """Flip the group's state and drive every member to it."""
        group = self.repository.get_group(group_id)
        return self.set_group_power(group.id, not group.is_on)

    def set_group_brightness(self, group_id: str, brightness: float) -> Dict[str, Exception]:
        group = dataclasses.replace(
            self.repository.get_group(group_id),
            is_on=True,
            brightness=float(max(0.0, min(100.0, brightness))),
        )
        self.repository.update_group(group)
        return self._fan_out(group, lambda b: self.controller.set_brightness(b, brightness))

    def set_group_color(self, group_id: str, r: int, g: int, b: int) -> Dict[str, Exception]:
        group = self.repository.get_group(group_id)
        return self._fan_out(group, lambda bulb: self.controller.set_color(bulb, r, g, b))

    def set_group_temperature(self, group_id: str, kelvin: int) -> Dict[str, Exception]:
        group = self.repository.get_group(group_id)
        return self._fan_out(group, lambda b: self.controller.set_temperature(b, kelvin))

    def set_group_scene(self, group_id: str, name: str) -> Dict[str, Exception]:
        if not scene_id(name):
            raise UnknownSceneError(f"Unknown scene: {name!r}")
        group = self.repository.get_group(group_id)
        return self._fan_out(group, lambda b: self.controller.set_scene(b, name))

    # Discovery

    def start_discovery(self) -> DiscoveryResult:
        return self.discovery.discover(self.repository.bulbs)

    def add_discovered_bulb(self, discovered: DiscoveredBulb) -> Bulb:
        """Adopt a discovery candidate; its MAC becomes the bulb id."""
        key = mac_key(discovered.mac_address)
        for bulb in self.repository.bulbs:
            if mac_key(bulb.id) == key or (bulb.mac_address and mac_key(bulb.mac_address) == key):
                debug(f"{discovered.mac_address} is already saved")
                self.discovery.remove(discovered.mac_address)
                return bulb
        bulb = Bulb(
            id=discovered.mac_address,
            name=discovered.name,
            ip_address=discovered.ip_address,
            mac_address=discovered.mac_address,
            connection_type=ConnectionType.BLE if discovered.is_ble else ConnectionType.WIFI,
        )
        self.repository.add_bulb(bulb)
        self.discovery.remove(discovered.mac_address)
        info(f"Added {bulb.name} ({bulb.ip_address})")
        return bulb

    def add_all_discovered_bulbs(self) -> List[Bulb]:
        return [self.add_discovered_bulb(d) for d in self.discovery.discovered]

    def reset_discovery(self) -> None:
        self.discovery.reset()

    # Energy

    def usage_today(self) -> float:
        return self.energy.get_total_usage_today()

    def bulb_usage_today(self, bulb_id: str) -> float:
        return self.energy.get_bulb_usage_today(self.get_bulb(bulb_id).id)

    def daily_usage(self, days: int = 7) -> List[Tuple[str, float]]:
        return self.energy.get_daily_usage(days)

    # Lifecycle

    def start(self) -> None:
        self.refresh.start()

    def stop(self) -> None:
        self.refresh.stop()
        self.controller.close()

    def __enter__(self) -> "SmartHome":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
