"""
Saved bulbs, groups and the energy ledger.

Collections are immutable tuples that get replaced as a whole; readers
always see a complete snapshot. Writes go through one lock per repository.
Files live in the configuration directory as plain JSON.
"""

import json
import threading
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from smartcontrol.exceptions import BulbNotFoundError
from smartcontrol.log import debug, warn
from smartcontrol.models import Bulb, BulbGroup
from smartcontrol.utils import get_config_dir

BulbsListener = Callable[[Tuple[Bulb, ...]], None]
GroupsListener = Callable[[Tuple[BulbGroup, ...]], None]


def _read_json(path: Optional[Path]) -> dict:
    if path is None or not path.exists():
        return {}
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        warn(f"Could not read {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _write_json(path: Optional[Path], data: dict) -> None:
    if path is None:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w") as f:
        json.dump(data, f, indent=2)
    tmp.replace(path)


def default_devices_path() -> Path:
    return get_config_dir() / "devices.json"


def default_energy_path() -> Path:
    return get_config_dir() / "energy.json"


class DeviceRepository:
    """Bulbs and groups, persisted to one JSON file (or kept in memory if path is None)."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path
        self._lock = threading.RLock()
        self._bulb_listeners: List[BulbsListener] = []
        self._group_listeners: List[GroupsListener] = []

        data = _read_json(path)
        self._bulbs: Tuple[Bulb, ...] = tuple(
            Bulb.from_dict(item) for item in data.get("bulbs", []) if isinstance(item, dict)
        )
        self._groups: Tuple[BulbGroup, ...] = tuple(
            BulbGroup.from_dict(item) for item in data.get("groups", []) if isinstance(item, dict)
        )
        debug(f"Loaded {len(self._bulbs)} bulbs and {len(self._groups)} groups")

    @property
    def bulbs(self) -> Tuple[Bulb, ...]:
        return self._bulbs

    @property
    def groups(self) -> Tuple[BulbGroup, ...]:
        return self._groups

    def subscribe_bulbs(self, listener: BulbsListener) -> Callable[[], None]:
        with self._lock:
            self._bulb_listeners.append(listener)
        return lambda: self._unsubscribe(self._bulb_listeners, listener)

    def subscribe_groups(self, listener: GroupsListener) -> Callable[[], None]:
        with self._lock:
            self._group_listeners.append(listener)
        return lambda: self._unsubscribe(self._group_listeners, listener)

    def _unsubscribe(self, listeners: list, listener) -> None:
        with self._lock:
            if listener in listeners:
                listeners.remove(listener)

    def _persist(self) -> None:
        _write_json(
            self.path,
            {
                "bulbs": [b.to_dict() for b in self._bulbs],
                "groups": [g.to_dict() for g in self._groups],
            },
        )

    # Whole-collection interface

    def load_bulbs(self) -> List[Bulb]:
        return list(self._bulbs)

    def load_groups(self) -> List[BulbGroup]:
        return list(self._groups)

    def _store(self, bulbs: Optional[tuple] = None, groups: Optional[tuple] = None) -> list:
        """Swap in new collections and persist. Caller holds the lock.

        Returns the (listeners, snapshot) pairs to notify once it is released.
        """
        pending = []
        if bulbs is not None:
            self._bulbs = bulbs
            pending.append((list(self._bulb_listeners), bulbs))
        if groups is not None:
            self._groups = groups
            pending.append((list(self._group_listeners), groups))
        if pending:
            self._persist()
        return pending

    @staticmethod
    def _notify(pending: list) -> None:
        for listeners, snapshot in pending:
            for listener in listeners:
                listener(snapshot)

    def save_bulbs(self, bulbs: Iterable[Bulb]) -> None:
        with self._lock:
            pending = self._store(bulbs=tuple(bulbs))
        self._notify(pending)

    def save_groups(self, groups: Iterable[BulbGroup]) -> None:
        with self._lock:
            pending = self._store(groups=tuple(groups))
        self._notify(pending)

    def update_bulbs(self, fn: Callable[[Tuple[Bulb, ...]], Iterable[Bulb]]) -> bool:
        """Atomically replace the bulb list with ``fn(current)``.

        Saves and notifies only when the result differs. Returns whether it did.
        Listeners run after the lock is released.
        """
        with self._lock:
            current = self._bulbs
            updated = tuple(fn(current))
            if updated == current:
                return False
            pending = self._store(bulbs=updated)
        self._notify(pending)
        return True

    def update_groups(self, fn: Callable[[Tuple[BulbGroup, ...]], Iterable[BulbGroup]]) -> bool:
        with self._lock:
            current = self._groups
            updated = tuple(fn(current))
            if updated == current:
                return False
            pending = self._store(groups=updated)
        self._notify(pending)
        return True

    # Bulbs

    def get_bulb(self, bulb_id: str) -> Bulb:
        for bulb in self._bulbs:
            if bulb.id == bulb_id:
                return bulb
        raise BulbNotFoundError(bulb_id)

    def find_bulb(self, key: str) -> Bulb:
        """Look a bulb up by id, MAC, IP or (case-insensitive) name."""
        lowered = key.lower()
        for bulb in self._bulbs:
            if key in (bulb.id, bulb.mac_address, bulb.ip_address) or bulb.name.lower() == lowered:
                return bulb
        raise BulbNotFoundError(key)

    def add_bulb(self, bulb: Bulb) -> None:
        self.update_bulbs(lambda current: current + (bulb,))

    def update_bulb(self, bulb: Bulb) -> None:
        self.update_bulbs(lambda current: tuple(bulb if b.id == bulb.id else b for b in current))

    def delete_bulb(self, bulb_id: str) -> None:
        self.delete_bulbs([bulb_id])

    def delete_bulbs(self, bulb_ids: Iterable[str]) -> None:
        ids = set(bulb_ids)
        with self._lock:
            bulbs = tuple(b for b in self._bulbs if b.id not in ids)
            # Groups must not keep pointing at deleted bulbs
            groups = tuple(
                BulbGroup(g.id, g.name, tuple(i for i in g.bulb_ids if i not in ids), g.is_on, g.brightness)
                for g in self._groups
            )
            pending = self._store(
                bulbs=bulbs if bulbs != self._bulbs else None,
                groups=groups if groups != self._groups else None,
            )
        self._notify(pending)

    # Groups

    def get_group(self, group_id: str) -> BulbGroup:
        for group in self._groups:
            if group.id == group_id or group.name.lower() == group_id.lower():
                return group
        raise BulbNotFoundError(group_id)

    def add_group(self, group: BulbGroup) -> None:
        self.update_groups(lambda current: current + (group,))

    def update_group(self, group: BulbGroup) -> None:
        self.update_groups(lambda current: tuple(group if g.id == group.id else g for g in current))

    def delete_group(self, group_id: str) -> None:
        self.update_groups(lambda current: tuple(g for g in current if g.id != group_id))


class EnergyRepository:
    """Watt-hour ledger keyed by day (YYYY-MM-DD), globally and per bulb."""

    def __init__(self, path: Optional[Path] = None, today: Callable[[], date] = date.today) -> None:
        self.path = path
        self._today = today
        self._lock = threading.Lock()
        data = _read_json(path)
        self._usage: Dict[str, float] = {
            k: float(v) for k, v in (data.get("usage") or {}).items()
        }
        self._bulb_usage: Dict[str, Dict[str, float]] = {
            bulb_id: {k: float(v) for k, v in days.items()}
            for bulb_id, days in (data.get("bulbUsage") or {}).items()
            if isinstance(days, dict)
        }

    def _day(self, offset: int = 0) -> str:
        return (self._today() - timedelta(days=offset)).isoformat()

    def _persist(self) -> None:
        _write_json(self.path, {"usage": self._usage, "bulbUsage": self._bulb_usage})

    def add_usage(self, energy_wh: float) -> None:
        with self._lock:
            today = self._day()
            self._usage[today] = self._usage.get(today, 0.0) + energy_wh
            self._persist()

    def add_bulb_usage(self, bulb_id: str, energy_wh: float) -> None:
        with self._lock:
            today = self._day()
            days = self._bulb_usage.setdefault(bulb_id, {})
            days[today] = days.get(today, 0.0) + energy_wh
            self._persist()

    def get_total_usage_today(self) -> float:
        return self._usage.get(self._day(), 0.0)

    def get_bulb_usage_today(self, bulb_id: str) -> float:
        return self._bulb_usage.get(bulb_id, {}).get(self._day(), 0.0)

    def get_daily_usage(self, days: int = 7) -> List[Tuple[str, float]]:
        """Last ``days`` days including today, oldest first."""
        keys = [self._day(offset) for offset in reversed(range(days))]
        return [(key, self._usage.get(key, 0.0)) for key in keys]

    def get_bulb_usage_history(self, bulb_id: str, days: int = 7) -> List[Tuple[str, float]]:
        usage = self._bulb_usage.get(bulb_id, {})
        keys = [self._day(offset) for offset in reversed(range(days))]
        return [(key, usage.get(key, 0.0)) for key in keys]
