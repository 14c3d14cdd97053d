"""
Background status polling and energy accounting.

Every cycle accrues energy for bulbs that are on, queries each Wi-Fi bulb
with ``getPilot`` and folds the answers into the saved bulb list. Bulbs
that were commanded within the cooldown window are left alone so a poll
that raced the command cannot undo it.
"""

import dataclasses
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Optional, Tuple

from smartcontrol.constants import POLL_INTERVAL, UPDATE_COOLDOWN
from smartcontrol.controller import BulbController, apply_status
from smartcontrol.exceptions import WizDeviceError
from smartcontrol.log import debug, warn
from smartcontrol.models import Bulb
from smartcontrol.protocol import PilotResult
from smartcontrol.storage import DeviceRepository, EnergyRepository

_REJECTED = object()


def energy_for_interval(bulb: Bulb, interval: float) -> float:
    """Watt-hours a bulb that is on used over ``interval`` seconds."""
    if not bulb.is_on:
        return 0.0
    return bulb.wattage * (bulb.brightness / 100.0) * (interval / 3600.0)


class RefreshLoop:
    def __init__(
        self,
        repository: DeviceRepository,
        energy: EnergyRepository,
        controller: BulbController,
        interval: float = POLL_INTERVAL,
        cooldown: float = UPDATE_COOLDOWN,
        max_workers: int = 8,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repository = repository
        self.energy = energy
        self.controller = controller
        self.interval = interval
        self.cooldown = cooldown
        self.max_workers = max_workers
        self._clock = clock

        self._last_update: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def mark_update(self, bulb_id: str) -> None:
        """Record that ``bulb_id`` was just commanded explicitly."""
        with self._lock:
            self._last_update[bulb_id] = self._clock()

    def in_cooldown(self, bulb_id: str) -> bool:
        with self._lock:
            last = self._last_update.get(bulb_id)
        return last is not None and self._clock() - last < self.cooldown

    def _accrue_energy(self, bulbs: Tuple[Bulb, ...]) -> float:
        total = 0.0
        for bulb in bulbs:
            used = energy_for_interval(bulb, self.interval)
            if used > 0:
                self.energy.add_bulb_usage(bulb.id, used)
                total += used
        if total > 0:
            self.energy.add_usage(total)
        return total

    def _fetch(self, bulb: Bulb):
        try:
            return self.controller.fetch_pilot(bulb)
        except WizDeviceError as e:
            warn(f"{bulb.name} rejected status query: {e.message}")
            return _REJECTED
        except Exception as e:
            # One bad bulb must not cost the others their poll
            warn(f"Polling {bulb.name} ({bulb.ip_address}) failed: {e}")
            return None

    def refresh_once(self) -> bool:
        """Run one poll cycle. Returns whether the saved bulb list changed."""
        bulbs = self.repository.bulbs
        self._accrue_energy(bulbs)

        targets = [b for b in bulbs if not b.is_ble and not self.in_cooldown(b.id)]
        if not targets:
            return False

        with ThreadPoolExecutor(
            max_workers=max(1, min(self.max_workers, len(targets))), thread_name_prefix="refresh"
        ) as executor:
            answers = list(executor.map(self._fetch, targets))
        fetched: Dict[str, Optional[PilotResult]] = {
            bulb.id: answer for bulb, answer in zip(targets, answers) if answer is not _REJECTED
        }

        def merge(current: Tuple[Bulb, ...]) -> Tuple[Bulb, ...]:
            merged = []
            for bulb in current:
                if bulb.id not in fetched or self.in_cooldown(bulb.id):
                    merged.append(bulb)
                    continue
                result = fetched[bulb.id]
                if result is None:
                    merged.append(dataclasses.replace(bulb, is_available=False))
                else:
                    merged.append(apply_status(bulb, result))
            return tuple(merged)

        changed = self.repository.update_bulbs(merge)
        if changed:
            debug("Bulb states updated from poll")
        return changed

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.refresh_once()
            except Exception as e:
                warn(f"Refresh cycle failed: {e}")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="bulb-refresh", daemon=True)
        self._thread.start()
        debug(f"Refresh loop started (every {self.interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def __enter__(self) -> "RefreshLoop":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
