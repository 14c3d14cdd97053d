"""
Tests for bulb state records and the scene table
"""

import pytest

from smartcontrol.models import Bulb, BulbGroup, ColorMode, ConnectionType, SceneMode, TemperatureMode
from smartcontrol.scenes import NO_SCENE, SCENES, scene_id, scene_name


@pytest.fixture
def bulb():
    return Bulb(id="b1", name="Lamp", ip_address="192.168.1.20")


class TestBulbMode:
    def test_defaults(self, bulb):
        assert bulb.is_on is False
        assert bulb.brightness == 50.0
        assert bulb.wattage == 9.0
        assert bulb.connection_type == ConnectionType.WIFI
        assert bulb.mode is None

    def test_scene_after_color_is_exclusive(self, bulb):
        """Should report only the active mode, remembering the colour"""
        updated = bulb.with_mode(ColorMode(255, 0, 0)).with_mode(SceneMode(5, "fireplace"))

        assert updated.scene_name == "fireplace"
        assert updated.rgb is None
        assert updated.temperature is None
        assert updated.last_rgb == (255, 0, 0)

    def test_color_after_scene_clears_scene(self, bulb):
        updated = bulb.with_mode(SceneMode(5, "fireplace")).with_mode(ColorMode(255, 0, 0))

        assert updated.scene_name is None
        assert updated.rgb == (255, 0, 0)

    def test_temperature_remembered(self, bulb):
        updated = bulb.with_mode(TemperatureMode(3000)).with_mode(ColorMode(1, 2, 3))
        assert updated.temperature is None
        assert updated.last_kelvin == 3000

    def test_json_form_preserves_state(self, bulb):
        original = bulb.with_mode(ColorMode(10, 20, 30)).with_mode(SceneMode(5, "fireplace"))
        data = original.to_dict()

        assert data["ipAddress"] == "192.168.1.20"
        assert data["mode"] == {"type": "scene", "sceneId": 5, "name": "fireplace"}
        assert Bulb.from_dict(data) == original

    def test_from_dict_tolerates_missing_fields(self):
        restored = Bulb.from_dict({"id": "x", "connectionType": "ble"})
        assert restored.name == "x"
        assert restored.is_ble
        assert restored.mode is None


class TestBulbGroup:
    def test_json_form(self):
        group = BulbGroup(id="g1", name="Downstairs", bulb_ids=("a", "b"), is_on=True, brightness=40.0)
        assert group.to_dict()["bulbIds"] == ["a", "b"]
        assert BulbGroup.from_dict(group.to_dict()) == group


class TestScenes:
    def test_table_bounds(self):
        assert len(SCENES) == 33
        assert scene_name(1) == "ocean"
        assert scene_name(33) == "diwali"

    def test_lookup_is_case_insensitive(self):
        assert scene_id("Fireplace") == 5
        assert scene_id(" cozy ") == 6

    def test_unknown(self):
        assert scene_id("disco") == NO_SCENE
        assert scene_id(None) == NO_SCENE
        assert scene_name(0) is None
        assert scene_name(99) is None
