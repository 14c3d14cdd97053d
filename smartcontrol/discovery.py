"""
Bulb discovery.

Three strategies feed one candidate list:

1. A ``registration`` broadcast to the subnet broadcast address.
2. A /24 IP scan with ``getPilot`` probes, only when the broadcast found
   nothing.
3. A BLE advertisement scan, running alongside the other two.

Results are deduplicated by MAC address (first seen wins) and split into
new candidates and ones that are already saved.
"""

import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from smartcontrol.ble_scanner import scan_ble
from smartcontrol.constants import (
    BLE_SCAN_DURATION,
    BROADCAST_LISTEN_DURATION,
    DEFAULT_PHONE_MAC,
    DISCOVERY_TIMEOUT,
    IP_SCAN_BATCH_SIZE,
    PROBE_TIMEOUT,
    RECV_BUFFER_SIZE,
    WIZ_PORT,
)
from smartcontrol.exceptions import ConnectivityError
from smartcontrol.log import debug, info, warn
from smartcontrol.models import Bulb, DiscoveredBulb, DiscoveryResult, DiscoveryState
from smartcontrol.protocol import registration_request
from smartcontrol.udp import discovered_bulb_from_response, probe_bulb
from smartcontrol.utils import LocalNetwork, get_local_network, get_phone_mac, mac_key

DiscoveryListener = Callable[[DiscoveryState, Tuple[DiscoveredBulb, ...]], None]


def discover_via_broadcast(
    broadcast_address: str,
    phone_mac: str = DEFAULT_PHONE_MAC,
    listen_time: float = BROADCAST_LISTEN_DURATION,
    deadline: float = DISCOVERY_TIMEOUT,
    port: int = WIZ_PORT,
) -> List[DiscoveredBulb]:
    """Broadcast one registration request and collect every bulb that answers."""
    found: dict = {}
    end_time = time.monotonic() + min(listen_time, deadline)
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind(("", 0))

            debug(f"Sending registration broadcast to {broadcast_address}:{port}")
            sock.sendto(registration_request(phone_mac).to_bytes(), (broadcast_address, port))

            while True:
                remaining = end_time - time.monotonic()
                if remaining <= 0:
                    break
                sock.settimeout(remaining)
                try:
                    data, addr = sock.recvfrom(RECV_BUFFER_SIZE)
                except socket.timeout:
                    break
                ip_address = addr[0]
                if ip_address in found:
                    continue
                bulb = discovered_bulb_from_response(data, ip_address)
                if bulb is None:
                    debug(f"Ignored unparsable reply from {ip_address}")
                    continue
                debug(f"Discovered bulb: {bulb.name} at {ip_address}")
                found[ip_address] = bulb
    except OSError as e:
        warn(f"Broadcast discovery error: {e}")
    return list(found.values())


def scan_ip_range(
    subnet_prefix: str,
    batch_size: int = IP_SCAN_BATCH_SIZE,
    prober: Optional[Callable[[str], Optional[DiscoveredBulb]]] = None,
    timeout: float = PROBE_TIMEOUT,
    port: int = WIZ_PORT,
) -> List[DiscoveredBulb]:
    """Probe every host of ``<subnet_prefix>.1`` .. ``.254``.

    Probes run in batches of ``batch_size``; a batch finishes before the
    next one starts, so at most ``batch_size`` probes are ever in flight.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    probe = prober or partial(probe_bulb, timeout=timeout, port=port)
    addresses = [f"{subnet_prefix}.{host}" for host in range(1, 255)]

    debug(f"Scanning subnet: {subnet_prefix}.*")
    found: List[DiscoveredBulb] = []
    with ThreadPoolExecutor(max_workers=batch_size, thread_name_prefix="probe") as executor:
        for start in range(0, len(addresses), batch_size):
            batch = addresses[start:start + batch_size]
            futures = [executor.submit(probe, ip) for ip in batch]
            for ip, future in zip(batch, futures):
                try:
                    bulb = future.result()
                except Exception as e:
                    debug(f"Probe of {ip} failed: {e}")
                    continue
                if bulb is not None:
                    found.append(bulb)
    return found


def _adopted_keys(existing_bulbs: Iterable[Bulb]) -> Tuple[set, set]:
    macs, ips = set(), set()
    for bulb in existing_bulbs:
        macs.add(mac_key(bulb.id))
        if bulb.mac_address:
            macs.add(mac_key(bulb.mac_address))
        if bulb.ip_address:
            ips.add(bulb.ip_address)
    return macs, ips


def merge_discovered(
    results: Iterable[Iterable[DiscoveredBulb]],
    existing_bulbs: Iterable[Bulb] = (),
) -> DiscoveryResult:
    """Deduplicate strategy outputs by MAC and split off already saved bulbs."""
    unique = {}
    for strategy_result in results:
        for bulb in strategy_result:
            unique.setdefault(mac_key(bulb.mac_address), bulb)

    macs, ips = _adopted_keys(existing_bulbs)
    new, already_added = [], []
    for key, bulb in unique.items():
        if key in macs or bulb.ip_address in ips:
            already_added.append(bulb)
        else:
            new.append(bulb)
    return DiscoveryResult(new=tuple(new), already_added=tuple(already_added))


class BulbDiscovery:
    """Discovery session: Idle -> Scanning -> Success | NoDevicesFound | Error.

    The visible candidate list is replaced as a whole, never edited in
    place. Starting a new run while one is scanning supersedes it: the older
    run finishes its own timeouts but its results are thrown away.
    """

    def __init__(
        self,
        use_broadcast: bool = True,
        use_ip_scan: bool = True,
        use_ble: bool = True,
        batch_size: int = IP_SCAN_BATCH_SIZE,
        listen_time: float = BROADCAST_LISTEN_DURATION,
        deadline: float = DISCOVERY_TIMEOUT,
        ble_duration: float = BLE_SCAN_DURATION,
        port: int = WIZ_PORT,
        network_provider: Callable[[], LocalNetwork] = get_local_network,
        phone_mac_provider: Callable[[], str] = get_phone_mac,
        broadcaster: Callable[..., List[DiscoveredBulb]] = discover_via_broadcast,
        ip_scanner: Callable[..., List[DiscoveredBulb]] = scan_ip_range,
        ble_scanner: Callable[[float], List[DiscoveredBulb]] = scan_ble,
    ) -> None:
        self.use_broadcast = use_broadcast
        self.use_ip_scan = use_ip_scan
        self.use_ble = use_ble
        self.batch_size = batch_size
        self.listen_time = listen_time
        self.deadline = deadline
        self.ble_duration = ble_duration
        self.port = port
        self._network_provider = network_provider
        self._phone_mac_provider = phone_mac_provider
        self._broadcaster = broadcaster
        self._ip_scanner = ip_scanner
        self._ble_scanner = ble_scanner

        self._lock = threading.Lock()
        self._generation = 0
        self._state = DiscoveryState.IDLE
        self._error_message: Optional[str] = None
        self._discovered: Tuple[DiscoveredBulb, ...] = ()
        self._listeners: List[DiscoveryListener] = []

    @property
    def state(self) -> DiscoveryState:
        return self._state

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def discovered(self) -> Tuple[DiscoveredBulb, ...]:
        return self._discovered

    def subscribe(self, listener: DiscoveryListener) -> Callable[[], None]:
        """Call ``listener(state, discovered)`` on every change."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _publish(
        self,
        generation: Optional[int],
        state: DiscoveryState,
        discovered: Sequence[DiscoveredBulb] = (),
        message: Optional[str] = None,
    ) -> bool:
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            self._state = state
            self._error_message = message
            self._discovered = tuple(discovered)
            snapshot = self._discovered
            listeners = list(self._listeners)
        for listener in listeners:
            listener(state, snapshot)
        return True

    def _scan_ble(self) -> List[DiscoveredBulb]:
        try:
            return self._ble_scanner(self.ble_duration)
        except Exception as e:
            # Hosts without a Bluetooth adapter still discover over Wi-Fi
            warn(f"BLE scan failed: {e}")
            return []

    def _scan_wifi(self, network: LocalNetwork) -> List[DiscoveredBulb]:
        found: List[DiscoveredBulb] = []
        if self.use_broadcast:
            found = self._broadcaster(
                network.broadcast_address,
                phone_mac=self._phone_mac_provider(),
                listen_time=self.listen_time,
                deadline=self.deadline,
                port=self.port,
            )
        if not found and self.use_ip_scan:
            info("Broadcast found nothing, trying IP scan...")
            found = self._ip_scanner(
                network.subnet_prefix,
                batch_size=self.batch_size,
                port=self.port,
            )
        return found

    def discover(self, existing_bulbs: Iterable[Bulb] = ()) -> DiscoveryResult:
        """Run every enabled strategy and publish the new candidates."""
        existing = list(existing_bulbs)
        with self._lock:
            self._generation += 1
            generation = self._generation
        self._publish(generation, DiscoveryState.SCANNING)

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ble-scan") if self.use_ble else None
        try:
            ble_future = executor.submit(self._scan_ble) if executor else None
            network = self._network_provider()
            wifi_found = self._scan_wifi(network)
            ble_found = ble_future.result() if ble_future else []
        except ConnectivityError as e:
            warn(f"Discovery aborted: {e}")
            self._publish(generation, DiscoveryState.ERROR, message=str(e))
            return DiscoveryResult()
        except Exception as e:
            warn(f"Discovery error: {e}")
            self._publish(generation, DiscoveryState.ERROR, message=str(e) or type(e).__name__)
            return DiscoveryResult()
        finally:
            if executor is not None:
                executor.shutdown(wait=False)

        result = merge_discovered([wifi_found, ble_found], existing)
        state = DiscoveryState.SUCCESS if result.new else DiscoveryState.NO_DEVICES_FOUND
        if not self._publish(generation, state, result.new):
            debug("Discovery run was superseded; dropping its results")
        return result

    def remove(self, mac_address: str) -> None:
        """Drop one candidate, e.g. after it was adopted."""
        key = mac_key(mac_address)
        with self._lock:
            state = self._state
            remaining = tuple(b for b in self._discovered if mac_key(b.mac_address) != key)
        self._publish(None, state, remaining, self._error_message)

    def reset(self) -> None:
        """Back to Idle with an empty list; cancels publication of any running scan."""
        with self._lock:
            self._generation += 1
        self._publish(None, DiscoveryState.IDLE)
