#!/usr/bin/env python3
"""
Fake WiZ Bulb
Answers registration / getPilot / setPilot on UDP like bulb firmware does,
for local testing without hardware.
"""

import argparse
import json
import logging
import socketserver
import threading
from typing import List, Optional, Tuple

from smartcontrol.constants import WIZ_PORT

PARSE_ERROR = (-32700, "Parse error")
METHOD_NOT_FOUND = (-32601, "Method not found")

_MODE_KEYS = ("sceneId", "temp", "r", "g", "b")


class WizRequestHandler(socketserver.BaseRequestHandler):
    def handle(self):
        data, sock = self.request
        client_ip = self.client_address[0]
        logging.info(f"UDP {len(data)} bytes from {client_ip}: {data!r}")

        reply = self.server.bulb.handle_datagram(data)
        if reply is None:
            logging.info("Staying silent")
            return
        logging.info(f"Response: {reply.decode('utf-8')}")
        sock.sendto(reply, self.client_address)


class FakeWizBulb:
    """One simulated bulb bound to ``host:port`` (port 0 picks a free one).

    ``requests`` records every decoded request. Set ``error`` to a
    ``(code, message)`` pair to answer everything with an error object, or
    ``silent`` to drop requests without answering.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0, mac: str = "a8bb50aabbcc"):
        self.mac = mac
        self.pilot = {"state": False, "dimming": 50, "temp": 2700}
        self.requests: List[dict] = []
        self.error: Optional[Tuple[int, str]] = None
        self.silent = False
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

        self._server = socketserver.UDPServer((host, port), WizRequestHandler)
        self._server.bulb = self  # type: ignore[attr-defined]
        self.host, self.port = self._server.server_address[:2]

    def _envelope(self, method: Optional[str], result: Optional[dict] = None, error=None) -> bytes:
        payload = {"method": method, "env": "pro"}
        if error is not None:
            payload["error"] = {"code": error[0], "message": error[1]}
        else:
            payload["result"] = result
        return json.dumps(payload).encode("utf-8")

    def _apply(self, params: dict) -> None:
        if "sceneId" in params:
            mode = {"sceneId": params["sceneId"]}
        elif "temp" in params:
            mode = {"temp": params["temp"]}
        elif any(k in params for k in ("r", "g", "b")):
            mode = {k: params.get(k, 0) for k in ("r", "g", "b")}
        else:
            mode = None
        if mode is not None:
            for key in _MODE_KEYS:
                self.pilot.pop(key, None)
            self.pilot.update(mode)
        for key in ("state", "dimming", "speed", "c", "w"):
            if key in params:
                self.pilot[key] = params[key]

    def handle_datagram(self, data: bytes) -> Optional[bytes]:
        try:
            request = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return self._envelope(None, error=PARSE_ERROR)
        if not isinstance(request, dict):
            return self._envelope(None, error=PARSE_ERROR)

        method = request.get("method")
        params = request.get("params") or {}
        with self._lock:
            self.requests.append(request)
            if self.silent:
                return None
            if self.error is not None:
                return self._envelope(method, error=self.error)

            if method == "registration":
                return self._envelope(method, {"mac": self.mac, "success": True})
            if method == "getPilot":
                return self._envelope(method, {"mac": self.mac, "rssi": -55, "src": "", **self.pilot})
            if method == "setPilot":
                self._apply(params)
                return self._envelope(method, {"success": True})
        return self._envelope(method, error=METHOD_NOT_FOUND)

    def start(self) -> "FakeWizBulb":
        self._thread = threading.Thread(target=self._server.serve_forever, name="fake-wiz-bulb", daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def __enter__(self) -> "FakeWizBulb":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.stop()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(description="Fake WiZ bulb (UDP)")
    parser.add_argument("--host", default="0.0.0.0", help="Address to bind (default: all interfaces)")
    parser.add_argument("--port", type=int, default=WIZ_PORT, help=f"UDP port to bind (default: {WIZ_PORT})")
    parser.add_argument("--mac", default="a8bb50aabbcc", help="MAC address to report")
    args = parser.parse_args()

    bulb = FakeWizBulb(args.host, args.port, args.mac)
    logging.info(f"Fake WiZ bulb {args.mac} listening on {bulb.host}:{bulb.port}")
    try:
        bulb._server.serve_forever()
    except KeyboardInterrupt:
        logging.info("Stopped")
    finally:
        bulb._server.server_close()
