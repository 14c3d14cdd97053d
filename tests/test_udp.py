"""
Tests for transient-socket UDP helpers and the discovery probe
"""

import time

from smartcontrol.udp import discovered_bulb_from_response, probe_bulb, send_udp_command


class TestDiscoveredBulbFromResponse:
    def test_mac_from_result(self):
        bulb = discovered_bulb_from_response(
            {"method": "registration", "result": {"mac": "a8bb50aabbcc", "success": True}},
            "192.168.1.42",
        )
        assert bulb.mac_address == "a8bb50aabbcc"
        assert bulb.name == "WiZ Bulb (42)"
        assert bulb.ip_address == "192.168.1.42"
        assert bulb.is_ble is False

    def test_top_level_mac_fallback(self):
        bulb = discovered_bulb_from_response(b'{"mac":"a8bb50000001","result":{}}', "10.0.0.5")
        assert bulb.mac_address == "a8bb50000001"

    def test_placeholder_without_mac(self):
        """Should derive a stable identifier from the IP"""
        bulb = discovered_bulb_from_response('{"result":{"success":true}}', "192.168.1.7")
        assert bulb.mac_address == "unknown_192_168_1_7"

    def test_not_json(self):
        assert discovered_bulb_from_response(b"hello", "192.168.1.7") is None
        assert discovered_bulb_from_response(b"[]", "192.168.1.7") is None


class TestProbe:
    def test_probe_hit(self, fake_bulb):
        bulb = probe_bulb("127.0.0.1", timeout=1.0, port=fake_bulb.port)

        assert bulb is not None
        assert bulb.mac_address == "a8bb50aabbcc"
        assert bulb.name == "WiZ Bulb (1)"
        assert fake_bulb.requests == [{"method": "getPilot", "params": {}}]

    def test_probe_non_listener_returns_quickly(self, unused_udp_port):
        """Should give up within roughly the probe timeout"""
        started = time.monotonic()
        assert probe_bulb("127.0.0.1", timeout=0.5, port=unused_udp_port) is None
        assert time.monotonic() - started < 2.0

    def test_silent_bulb(self, fake_bulb):
        fake_bulb.silent = True
        assert probe_bulb("127.0.0.1", timeout=0.2, port=fake_bulb.port) is None


class TestSendUdpCommand:
    def test_raw_command(self, fake_bulb):
        reply = send_udp_command(
            "127.0.0.1", {"method": "setPilot", "params": {"state": True}}, timeout=1.0, port=fake_bulb.port
        )
        assert reply["result"] == {"success": True}
        assert fake_bulb.pilot["state"] is True

    def test_no_answer(self, unused_udp_port):
        assert send_udp_command("127.0.0.1", {"method": "getPilot"}, timeout=0.3, port=unused_udp_port) is None
