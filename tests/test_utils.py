"""
Tests for host network helpers and MAC handling
"""

import socket
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from smartcontrol import utils
from smartcontrol.constants import DEFAULT_PHONE_MAC
from smartcontrol.exceptions import ConnectivityError


class TestMacAddresses:
    @pytest.mark.parametrize("raw", ["a8bb50aabbcc", "A8:BB:50:AA:BB:CC", "a8-bb-50-aa-bb-cc", " a8:bb:50:aa:bb:cc "])
    def test_normalize(self, raw):
        assert utils.normalize_mac_address(raw) == "A8:BB:50:AA:BB:CC"

    def test_invalid(self):
        with pytest.raises(ValueError):
            utils.normalize_mac_address("")
        with pytest.raises(ValueError):
            utils.normalize_mac_address("not-a-mac")

    def test_mac_key_placeholder(self):
        assert utils.mac_key("unknown_192_168_1_7") == "unknown_192_168_1_7"
        assert utils.mac_key("a8bb50aabbcc") == utils.mac_key("A8:BB:50:AA:BB:CC")

    def test_phone_mac(self):
        with patch("smartcontrol.utils.get_mac_address", return_value="a8:bb:50:aa:bb:cc"):
            assert utils.get_phone_mac() == "A8BB50AABBCC"
        with patch("smartcontrol.utils.get_mac_address", return_value=None):
            assert utils.get_phone_mac() == DEFAULT_PHONE_MAC

    def test_get_mac_address_for_interface(self):
        addrs = {"wlan0": [SimpleNamespace(family=utils.psutil.AF_LINK, address="a8:bb:50:aa:bb:cc")]}
        with patch("smartcontrol.utils.psutil.net_if_addrs", return_value=addrs):
            assert utils.get_mac_address("wlan0") == "a8:bb:50:aa:bb:cc"
            assert utils.get_mac_address("eth9") is None
            assert utils.get_mac_address() == "a8:bb:50:aa:bb:cc"


class TestLocalNetwork:
    def test_loopback_only(self):
        with patch("smartcontrol.utils.get_local_ip", return_value="127.0.0.1"):
            with pytest.raises(ConnectivityError):
                utils.get_local_network()

    def test_netmask_from_interface(self):
        addrs = {
            "wlan0": [SimpleNamespace(family=socket.AF_INET, address="192.168.1.23", netmask="255.255.0.0")],
        }
        with patch("smartcontrol.utils.get_local_ip", return_value="192.168.1.23"), \
                patch("smartcontrol.utils.psutil.net_if_addrs", return_value=addrs):
            network = utils.get_local_network()

        assert network.netmask == "255.255.0.0"
        assert network.broadcast_address == "192.168.255.255"
        assert network.subnet_prefix == "192.168.1"

    def test_default_netmask(self):
        with patch("smartcontrol.utils.get_local_ip", return_value="10.0.0.5"), \
                patch("smartcontrol.utils.psutil.net_if_addrs", return_value={}):
            network = utils.get_local_network()

        assert network.broadcast_address == "10.0.0.255"

    def test_config_dir(self):
        assert utils.get_config_dir().name == ".smartcontrol"
