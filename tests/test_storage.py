"""
Tests for the bulb/group repository and the energy ledger
"""

import json
import threading
from datetime import date

import pytest

from smartcontrol.exceptions import BulbNotFoundError
from smartcontrol.models import Bulb, BulbGroup, SceneMode
from smartcontrol.storage import DeviceRepository, EnergyRepository

LAMP = Bulb(id="b1", name="Lamp", ip_address="192.168.1.20", mac_address="A8:BB:50:00:00:20")
DESK = Bulb(id="b2", name="Desk", ip_address="192.168.1.21")


class TestDeviceRepository:
    def test_persists_to_json(self, tmp_path):
        path = tmp_path / "devices.json"
        repo = DeviceRepository(path)
        repo.add_bulb(LAMP.with_mode(SceneMode(5, "fireplace")))
        repo.add_group(BulbGroup(id="g1", name="Living", bulb_ids=("b1",)))

        data = json.loads(path.read_text())
        assert data["bulbs"][0]["ipAddress"] == "192.168.1.20"

        reloaded = DeviceRepository(path)
        assert reloaded.bulbs == repo.bulbs
        assert reloaded.groups == repo.groups
        assert reloaded.load_bulbs()[0].scene_name == "fireplace"

    def test_in_memory(self, repository):
        repository.save_bulbs([LAMP, DESK])
        assert repository.path is None
        assert repository.load_bulbs() == [LAMP, DESK]

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "devices.json"
        path.write_text("{not json")
        assert DeviceRepository(path).bulbs == ()

    def test_snapshots_are_immutable(self, repository):
        repository.add_bulb(LAMP)
        snapshot = repository.bulbs
        repository.add_bulb(DESK)

        assert snapshot == (LAMP,)
        assert repository.bulbs == (LAMP, DESK)

    def test_update_bulbs_reports_change(self, repository):
        repository.save_bulbs([LAMP])
        notified = []
        repository.subscribe_bulbs(notified.append)

        assert repository.update_bulbs(lambda current: current) is False
        assert notified == []

        assert repository.update_bulbs(lambda current: current + (DESK,)) is True
        assert notified == [(LAMP, DESK)]

    def test_listeners_run_outside_the_lock(self, repository):
        """Should let a listener wait on another thread that writes the repository"""
        writer_done = []

        def listener(bulbs):
            if len(bulbs) != 1:
                return
            writer = threading.Thread(target=lambda: repository.add_group(BulbGroup(id="g1", name="All")))
            writer.start()
            writer.join(timeout=2.0)
            writer_done.append(not writer.is_alive())

        repository.subscribe_bulbs(listener)
        repository.update_bulbs(lambda current: current + (LAMP,))

        assert writer_done == [True]
        assert repository.get_group("g1").name == "All"

    def test_unsubscribe(self, repository):
        notified = []
        unsubscribe = repository.subscribe_bulbs(notified.append)
        unsubscribe()
        repository.add_bulb(LAMP)
        assert notified == []

    def test_update_bulb(self, repository):
        repository.save_bulbs([LAMP, DESK])
        renamed = Bulb(id="b2", name="Office", ip_address="192.168.1.21")

        repository.update_bulb(renamed)
        assert repository.get_bulb("b2").name == "Office"
        assert repository.get_bulb("b1") == LAMP

    def test_find_bulb(self, repository):
        repository.save_bulbs([LAMP, DESK])

        assert repository.find_bulb("lamp") == LAMP
        assert repository.find_bulb("192.168.1.21") == DESK
        assert repository.find_bulb("A8:BB:50:00:00:20") == LAMP
        with pytest.raises(BulbNotFoundError):
            repository.find_bulb("garage")

    def test_missing_bulb_is_a_key_error(self, repository):
        with pytest.raises(KeyError):
            repository.get_bulb("nope")

    def test_delete_bulbs_cleans_groups(self, repository):
        repository.save_bulbs([LAMP, DESK])
        repository.add_group(BulbGroup(id="g1", name="Living", bulb_ids=("b1", "b2")))
        groups_seen = []
        repository.subscribe_groups(groups_seen.append)

        repository.delete_bulbs(["b1"])

        assert repository.bulbs == (DESK,)
        assert repository.groups[0].bulb_ids == ("b2",)
        assert groups_seen[-1][0].bulb_ids == ("b2",)

    def test_groups(self, repository):
        group = BulbGroup(id="g1", name="Living")
        repository.add_group(group)
        assert repository.get_group("living") == group

        repository.update_group(BulbGroup(id="g1", name="Lounge"))
        assert repository.get_group("g1").name == "Lounge"

        repository.delete_group("g1")
        assert repository.groups == ()


class TestEnergyRepository:
    def test_usage_accumulates(self):
        ledger = EnergyRepository(today=lambda: date(2024, 5, 1))
        ledger.add_usage(1.5)
        ledger.add_usage(0.5)
        ledger.add_bulb_usage("b1", 0.75)

        assert ledger.get_total_usage_today() == 2.0
        assert ledger.get_bulb_usage_today("b1") == 0.75
        assert ledger.get_bulb_usage_today("b2") == 0.0

    def test_days_are_separate(self):
        today = [date(2024, 5, 1)]
        ledger = EnergyRepository(today=lambda: today[0])
        ledger.add_usage(3.0)
        ledger.add_bulb_usage("b1", 3.0)
        today[0] = date(2024, 5, 3)
        ledger.add_usage(1.0)

        assert ledger.get_total_usage_today() == 1.0
        assert ledger.get_daily_usage(3) == [
            ("2024-05-01", 3.0),
            ("2024-05-02", 0.0),
            ("2024-05-03", 1.0),
        ]
        assert ledger.get_bulb_usage_history("b1", 3)[0] == ("2024-05-01", 3.0)

    def test_persists(self, tmp_path):
        path = tmp_path / "energy.json"
        ledger = EnergyRepository(path, today=lambda: date(2024, 5, 1))
        ledger.add_usage(2.5)
        ledger.add_bulb_usage("b1", 2.5)

        reloaded = EnergyRepository(path, today=lambda: date(2024, 5, 1))
        assert reloaded.get_total_usage_today() == 2.5
        assert reloaded.get_bulb_usage_today("b1") == 2.5
        assert json.loads(path.read_text())["usage"] == {"2024-05-01": 2.5}
