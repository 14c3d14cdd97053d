"""
Shared pytest fixtures for SmartControl tests
"""

import socket

import pytest

from fake_wiz_bulb import FakeWizBulb
from smartcontrol.controller import BulbController
from smartcontrol.models import Bulb
from smartcontrol.storage import DeviceRepository, EnergyRepository


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSocket:
    """Stand-in UDP socket.

    ``stale`` holds datagrams already queued before a request (only visible
    in non-blocking mode); ``responder(data, addr)`` produces the reply to a
    sent datagram, or None to time out.
    """

    def __init__(self, responder=None, stale=None):
        self.responder = responder
        self.stale = list(stale or [])
        self.sent = []
        self.pending = []
        self.blocking = True
        self.timeout = None
        self.closed = False
        self.fail_send = None
        self.bound = None

    def bind(self, addr):
        self.bound = addr

    def settimeout(self, timeout):
        self.timeout = timeout

    def setblocking(self, flag):
        self.blocking = flag

    def sendto(self, data, addr):
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append((data, addr))
        if self.responder is not None:
            reply = self.responder(data, addr)
            if reply is not None:
                self.pending.append(reply)

    def recvfrom(self, bufsize):
        if not self.blocking:
            if self.stale:
                return self.stale.pop(0)
            raise BlockingIOError()
        if self.pending:
            return self.pending.pop(0)
        raise socket.timeout("timed out")

    def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_bulb():
    """A simulated bulb listening on a free loopback port"""
    bulb = FakeWizBulb(host="127.0.0.1", port=0, mac="a8bb50aabbcc")
    bulb.start()
    yield bulb
    bulb.stop()


@pytest.fixture
def controller(fake_bulb):
    ctl = BulbController(port=fake_bulb.port, timeout=0.5)
    yield ctl
    ctl.close()


@pytest.fixture
def loopback_bulb():
    """Saved-bulb record pointing at the simulated bulb"""
    return Bulb(id="a8bb50aabbcc", name="Desk", ip_address="127.0.0.1", mac_address="a8bb50aabbcc")


@pytest.fixture
def repository():
    return DeviceRepository()


@pytest.fixture
def energy():
    return EnergyRepository()


@pytest.fixture
def unused_udp_port():
    """A loopback UDP port nothing listens on"""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
