"""
Tests for the shared UDP socket
"""

import threading
import time

from conftest import FakeSocket
from smartcontrol.socket_manager import WizSocketManager


def echo(data, addr):
    return (b'{"result":{"success":true}}', addr)


class TestSendAndReceive:
    def test_reply_from_target(self):
        sock = FakeSocket(responder=echo)
        manager = WizSocketManager(timeout=1.0, socket_factory=lambda: sock)

        reply = manager.send_and_receive(b"ping", "127.0.0.1", 38899)

        assert reply == b'{"result":{"success":true}}'
        assert sock.sent == [(b"ping", ("127.0.0.1", 38899))]

    def test_per_call_timeout(self):
        sock = FakeSocket(responder=echo)
        manager = WizSocketManager(timeout=1.0, socket_factory=lambda: sock)

        manager.send_and_receive(b"ping", "127.0.0.1", timeout=0.25)
        assert sock.timeout == 0.25

    def test_stale_datagram_is_discarded(self):
        """Should drop replies left over from an earlier timed-out exchange"""
        sock = FakeSocket(responder=echo, stale=[(b"old", ("127.0.0.1", 38899))])
        manager = WizSocketManager(socket_factory=lambda: sock)

        assert manager.send_and_receive(b"ping", "127.0.0.1") == b'{"result":{"success":true}}'
        assert sock.stale == []

    def test_reply_from_other_host_is_rejected(self):
        sock = FakeSocket(responder=lambda data, addr: (b"{}", ("10.0.0.9", 38899)))
        manager = WizSocketManager(socket_factory=lambda: sock)

        assert manager.send_and_receive(b"ping", "127.0.0.1") is None

    def test_timeout_keeps_socket(self):
        created = []

        def factory():
            created.append(FakeSocket())
            return created[-1]

        manager = WizSocketManager(socket_factory=factory)
        assert manager.send_and_receive(b"ping", "127.0.0.1") is None
        assert manager.send_and_receive(b"ping", "127.0.0.1") is None

        assert len(created) == 1
        assert not created[0].closed

    def test_io_error_reopens_socket(self):
        created = []

        def factory():
            sock = FakeSocket(responder=echo)
            if not created:
                sock.fail_send = OSError("network unreachable")
            created.append(sock)
            return sock

        manager = WizSocketManager(socket_factory=factory)
        assert manager.send_and_receive(b"ping", "127.0.0.1") is None
        assert created[0].closed

        assert manager.send_and_receive(b"ping", "127.0.0.1") is not None
        assert len(created) == 2

    def test_exchanges_never_interleave(self):
        """Should serialize concurrent callers on the one socket"""
        in_flight = []
        peak = []
        lock = threading.Lock()

        def responder(data, addr):
            with lock:
                in_flight.append(data)
                peak.append(len(in_flight))
            time.sleep(0.01)
            with lock:
                in_flight.remove(data)
            return (data, addr)

        sock = FakeSocket(responder=responder)
        manager = WizSocketManager(socket_factory=lambda: sock)
        replies = {}

        def worker(n):
            payload = f"req-{n}".encode()
            replies[n] = manager.send_and_receive(payload, "127.0.0.1")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert max(peak) == 1
        assert all(replies[n] == f"req-{n}".encode() for n in range(8))

    def test_fire_and_forget(self):
        sock = FakeSocket()
        manager = WizSocketManager(socket_factory=lambda: sock)

        manager.send(b'{"method":"setPilot","params":{"state":false}}', "192.168.1.20")

        assert sock.sent == [(b'{"method":"setPilot","params":{"state":false}}', ("192.168.1.20", 38899))]

    def test_fire_and_forget_error_drops_socket(self):
        sock = FakeSocket()
        sock.fail_send = OSError("no route")
        manager = WizSocketManager(socket_factory=lambda: sock)

        manager.send(b"x", "192.168.1.20")
        assert sock.closed

    def test_socket_is_bound_when_opened(self):
        """Should bind before the first drain so recvfrom is legal on every platform"""
        sock = FakeSocket(responder=echo)
        manager = WizSocketManager(socket_factory=lambda: sock)

        manager.send_and_receive(b"ping", "127.0.0.1")
        assert sock.bound == ("", 0)

    def test_malformed_address_is_no_reply(self):
        sock = FakeSocket(responder=echo)
        manager = WizSocketManager(socket_factory=lambda: sock)

        assert manager.send_and_receive(b"ping", "bad..host") is None
        manager.send(b"ping", "bad..host")

        assert sock.sent == []
        assert not sock.closed

    def test_close(self):
        sock = FakeSocket(responder=echo)
        with WizSocketManager(socket_factory=lambda: sock) as manager:
            manager.send_and_receive(b"ping", "127.0.0.1")
        assert sock.closed


class TestLoopback:
    def test_fresh_socket_drains_and_stays_open(self, fake_bulb):
        """Should drain a newly created real socket without tearing it down"""
        request = b'{"method":"getPilot","params":{}}'
        fake_bulb.silent = True
        manager = WizSocketManager(timeout=0.2)
        try:
            assert manager.send_and_receive(request, "127.0.0.1", fake_bulb.port) is None
            sock = manager._sock
            assert sock is not None
            assert sock.getsockname()[1] != 0

            fake_bulb.silent = False
            reply = manager.send_and_receive(request, "127.0.0.1", fake_bulb.port)
            assert reply is not None
            assert manager._sock is sock
        finally:
            manager.close()

    def test_exchange_with_simulated_bulb(self, fake_bulb):
        with WizSocketManager(timeout=1.0) as manager:
            reply = manager.send_and_receive(
                b'{"method":"getPilot","params":{}}', "127.0.0.1", fake_bulb.port
            )
        assert b'"mac": "a8bb50aabbcc"' in reply
