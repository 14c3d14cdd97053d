import socket
import threading
from typing import Callable, Optional

from smartcontrol.constants import RECV_BUFFER_SIZE, SOCKET_TIMEOUT, WIZ_PORT
from smartcontrol.log import debug, recv, send, warn


def _udp_socket() -> socket.socket:
    return socket.socket(socket.AF_INET, socket.SOCK_DGRAM)


class WizSocketManager:
    """One shared UDP socket for request/response exchanges with bulbs.

    Every send and receive happens under a single lock so a reply can never
    be paired with another caller's request. Reply source addresses are
    compared with the target address; that check trusts the OS-reported
    source of an unauthenticated datagram and is not a security boundary.
    """

    def __init__(
        self,
        timeout: float = SOCKET_TIMEOUT,
        socket_factory: Optional[Callable[[], socket.socket]] = None,
    ) -> None:
        self.timeout = timeout
        self._socket_factory = socket_factory or _udp_socket
        self._sock: Optional[socket.socket] = None
        self._lock = threading.Lock()

    def _get_socket(self) -> socket.socket:
        if self._sock is None:
            sock = self._socket_factory()
            # Winsock refuses recvfrom on a socket that was never bound
            try:
                sock.bind(("", 0))
            except OSError:
                sock.close()
                raise
            sock.settimeout(self.timeout)
            self._sock = sock
            debug("Opened shared UDP socket")
        return self._sock

    def _close_socket(self) -> None:
        sock, self._sock = self._sock, None
        if sock is None:
            return
        try:
            sock.close()
        except OSError as e:
            debug(f"Error closing UDP socket: {e}")

    @staticmethod
    def _resolve(ip: str) -> Optional[str]:
        # Malformed names fail IDNA encoding with UnicodeError, not gaierror
        try:
            return socket.gethostbyname(ip)
        except (OSError, ValueError) as e:
            warn(f"Cannot resolve {ip!r}: {e}")
            return None

    def _drain(self, sock: socket.socket) -> None:
        """Discard late replies left over from an exchange that timed out."""
        sock.setblocking(False)
        try:
            while True:
                data, addr = sock.recvfrom(RECV_BUFFER_SIZE)
                debug(f"Discarded stale datagram from {addr[0]} ({len(data)} bytes)")
        except (BlockingIOError, InterruptedError):
            pass
        finally:
            sock.setblocking(True)

    def send(self, data: bytes, ip: str, port: int = WIZ_PORT) -> None:
        """Fire-and-forget send."""
        with self._lock:
            target = self._resolve(ip)
            if target is None:
                return
            try:
                send("UDP", data.decode("utf-8", errors="replace"), f"{target}:{port}")
                self._get_socket().sendto(data, (target, port))
            except OSError as e:
                warn(f"Error sending to {ip}: {e}")
                self._close_socket()

    def send_and_receive(
        self, data: bytes, ip: str, port: int = WIZ_PORT, timeout: Optional[float] = None
    ) -> Optional[bytes]:
        """Send one datagram and wait for one reply from the same host.

        Returns None on timeout, on I/O errors, for an address that does not
        resolve, or when the reply came from somebody else.
        """
        with self._lock:
            target = self._resolve(ip)
            if target is None:
                return None
            try:
                sock = self._get_socket()
                self._drain(sock)
                sock.settimeout(self.timeout if timeout is None else timeout)

                send("UDP", data.decode("utf-8", errors="replace"), f"{target}:{port}")
                sock.sendto(data, (target, port))
                reply, addr = sock.recvfrom(RECV_BUFFER_SIZE)
            except socket.timeout:
                debug(f"No reply from {ip} within timeout")
                return None
            except OSError as e:
                warn(f"UDP exchange with {ip} failed: {e}")
                self._close_socket()
                return None

            if addr[0] != target:
                debug(f"Dropped reply from {addr[0]} while waiting for {target}")
                return None
            recv("UDP", reply.decode("utf-8", errors="replace"), f"{addr[0]}:{addr[1]}")
            return reply

    def close(self) -> None:
        with self._lock:
            self._close_socket()

    def __enter__(self) -> "WizSocketManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
