"""
Command handling for the SmartControl CLI.
Maps parsed arguments onto direct UDP exchanges, saved-bulb control,
group fan-out, discovery and energy reports.
"""

import json
import sys
import time
from typing import Dict

from smartcontrol import protocol
from smartcontrol.constants import BRIGHTNESS_MAX, COLOR_MAX, COLOR_MIN, TEMP_MAX, TEMP_MIN
from smartcontrol.exceptions import SmartControlError
from smartcontrol.home import SmartHome
from smartcontrol.log import cmd, info, result, say, section, step, stop, subsection, success, waiting, warn
from smartcontrol.models import Bulb, DiscoveryState
from smartcontrol.scenes import SCENES, scene_id
from smartcontrol.udp import send_udp_command


def describe_bulb(bulb: Bulb) -> str:
    parts = [
        "on" if bulb.is_on else "off",
        f"{bulb.brightness:.0f}%",
    ]
    if bulb.scene_name:
        parts.append(f"scene {bulb.scene_name}")
    elif bulb.rgb:
        parts.append("rgb {}:{}:{}".format(*bulb.rgb))
    elif bulb.temperature:
        parts.append(f"{bulb.temperature}K")
    if not bulb.is_available:
        parts.append("unreachable")
    if bulb.is_ble:
        parts.append("BLE")
    return f"{bulb.name} [{bulb.ip_address}] " + ", ".join(parts)


def _check_color(values) -> tuple:
    r, g, b = (int(v) for v in values)
    if not all(COLOR_MIN <= v <= COLOR_MAX for v in (r, g, b)):
        warn("Color values must be between 0 and 255")
        sys.exit(2)
    return r, g, b


def _check_brightness(value: int) -> int:
    if not 0 <= value <= BRIGHTNESS_MAX:
        warn("Brightness must be between 0 and 100")
        sys.exit(2)
    return value


def _check_temperature(value: int) -> int:
    if not 1000 <= value <= 10000:
        warn(f"Color temperature must be in Kelvin (bulbs accept {TEMP_MIN}-{TEMP_MAX})")
        sys.exit(2)
    return value


def _check_scene(name: str) -> str:
    if not scene_id(name):
        warn(f"Unknown scene '{name}'. Use --list-scenes to see the available ones.")
        sys.exit(2)
    return name


class CommandHandler:
    def __init__(self, args, home: SmartHome):
        self.args = args
        self.home = home

    def handle_udp_commands(self):
        """Handle UDP commands for direct bulb control (no saved bulb needed)."""
        if self.args.udp_on:
            request = protocol.turn_on()
        elif self.args.udp_off:
            request = protocol.turn_off()
        elif self.args.udp_brightness is not None:
            request = protocol.set_brightness(_check_brightness(self.args.udp_brightness))
        elif self.args.udp_color:
            request = protocol.set_color(*_check_color(self.args.udp_color))
        elif self.args.udp_temp is not None:
            request = protocol.set_temperature(_check_temperature(self.args.udp_temp))
        elif self.args.udp_scene:
            request = protocol.set_scene(scene_id(_check_scene(self.args.udp_scene)))
        elif self.args.udp_status:
            request = protocol.get_pilot_request()
        elif self.args.udp_json:
            try:
                custom = json.loads(self.args.udp_json)
            except json.JSONDecodeError:
                warn("Invalid JSON for --udp-json")
                sys.exit(2)
            if not isinstance(custom, dict):
                warn("--udp-json must be a JSON object")
                sys.exit(2)
            self._print_reply(send_udp_command(self.args.ip, custom))
            return
        else:
            warn(
                "--ip requires a UDP command (--udp-on, --udp-off, --udp-brightness, --udp-color, "
                "--udp-temp, --udp-scene, --udp-status, or --udp-json)"
            )
            sys.exit(2)

        self._print_reply(send_udp_command(self.args.ip, request.to_dict()))

    def _print_reply(self, reply):
        if reply is None:
            warn(f"No response from {self.args.ip}")
            sys.exit(1)
        response = protocol.parse_response(json.dumps(reply))
        if response is not None and response.error is not None:
            warn(f"Bulb rejected request ({response.error.code}): {response.error.message}")
            sys.exit(1)
        result(json.dumps(reply.get("result", reply)))

    def handle_bulb_commands(self):
        """Control one saved bulb, looked up by id, MAC, IP or name."""
        key = self.args.bulb
        try:
            if self.args.on:
                bulb = self.home.set_power(key, True)
            elif self.args.off:
                bulb = self.home.set_power(key, False)
            elif self.args.toggle:
                bulb = self.home.toggle_bulb(key)
            elif self.args.brightness is not None:
                bulb = self.home.set_brightness(key, _check_brightness(self.args.brightness))
            elif self.args.color:
                bulb = self.home.set_color(key, *_check_color(self.args.color))
            elif self.args.color_temp is not None:
                bulb = self.home.set_temperature(key, _check_temperature(self.args.color_temp))
            elif self.args.scene:
                bulb = self.home.set_scene(key, _check_scene(self.args.scene))
            elif self.args.status:
                bulb = self.home.refresh_bulb(key)
            elif self.args.delete:
                bulb = self.home.get_bulb(key)
                self.home.delete_bulb(bulb.id)
                success(f"Deleted {bulb.name}")
                return
            elif self.args.wattage is not None:
                bulb = self.home.update_bulb_wattage(key, self.args.wattage)
                success(f"{bulb.name} wattage set to {bulb.wattage:g} W")
                return
            else:
                warn(
                    "--bulb requires a command (--on, --off, --toggle, --brightness, --color, "
                    "--color-temp, --scene, --status, --delete or --wattage)"
                )
                sys.exit(2)
        except KeyError:
            warn(f"No saved bulb matches '{key}'. Use --list to see saved bulbs.")
            sys.exit(2)
        except ValueError as e:
            warn(str(e))
            sys.exit(2)
        except SmartControlError as e:
            warn(str(e))
            sys.exit(1)

        if bulb.is_available:
            success(describe_bulb(bulb))
        else:
            warn(f"No acknowledgement from {bulb.name}; cached state: {describe_bulb(bulb)}")

    def handle_group_commands(self):
        key = self.args.group
        try:
            if self.args.group_on:
                failures = self.home.set_group_power(key, True)
            elif self.args.group_off:
                failures = self.home.set_group_power(key, False)
            elif self.args.group_toggle:
                failures = self.home.toggle_group(key)
            elif self.args.group_brightness is not None:
                failures = self.home.set_group_brightness(key, _check_brightness(self.args.group_brightness))
            elif self.args.group_color:
                failures = self.home.set_group_color(key, *_check_color(self.args.group_color))
            elif self.args.group_temp is not None:
                failures = self.home.set_group_temperature(key, _check_temperature(self.args.group_temp))
            elif self.args.group_scene:
                failures = self.home.set_group_scene(key, _check_scene(self.args.group_scene))
            elif self.args.delete:
                self.home.delete_group(key)
                success(f"Deleted group {key}")
                return
            else:
                warn(
                    "--group requires a command (--group-on, --group-off, --group-toggle, "
                    "--group-brightness, --group-color, --group-temp, --group-scene or --delete)"
                )
                sys.exit(2)
        except KeyError:
            warn(f"No group matches '{key}'")
            sys.exit(2)

        self._report_failures(failures)

    def _report_failures(self, failures: Dict[str, Exception]):
        if not failures:
            success("All bulbs in the group updated")
            return
        for bulb_id, e in failures.items():
            stop(f"{bulb_id}: {e}")
        sys.exit(1)

    def create_group(self):
        name, *members = self.args.create_group
        if not members:
            warn("--create-group needs a name followed by at least one bulb")
            sys.exit(2)
        try:
            group = self.home.create_group(name, members)
        except KeyError as e:
            warn(f"Unknown bulb: {e}")
            sys.exit(2)
        success(f"Group {group.name} created ({group.id})")

    def add_bulb(self):
        name, ip = self.args.add
        try:
            bulb = self.home.add_bulb(name, ip)
        except ValueError as e:
            warn(str(e))
            sys.exit(2)
        success(f"Saved {bulb.name} as {bulb.id}")

    def list_bulbs(self):
        section("Saved bulbs")
        if not self.home.bulbs:
            info("No bulbs saved yet. Use --discover or --add NAME IP.")
        for bulb in self.home.bulbs:
            step(describe_bulb(bulb))
            say(f"id: {bulb.id}  mac: {bulb.mac_address or '-'}  {bulb.wattage:g} W", extra_indent=4)
        if self.home.groups:
            subsection("Groups")
            names = {b.id: b.name for b in self.home.bulbs}
            for group in self.home.groups:
                members = ", ".join(names.get(i, i) for i in group.bulb_ids)
                step(f"{group.name} ({'on' if group.is_on else 'off'}): {members}")

    def list_scenes(self):
        section("Scenes")
        for name, sid in SCENES.items():
            say(f"{sid:>3}  {name}")

    def handle_discovery(self):
        section("Discovery")
        if self.args.no_ble:
            self.home.discovery.use_ble = False
        waiting("Looking for bulbs on the local network...")
        outcome = self.home.start_discovery()

        if self.home.discovery.state == DiscoveryState.ERROR:
            stop(f"Discovery failed: {self.home.discovery.error_message}")
            sys.exit(1)
        for bulb in outcome.already_added:
            info(f"Already saved: {bulb.name} ({bulb.ip_address})")
        if not outcome.new:
            warn("No new bulbs found")
            return

        subsection(f"Found {len(outcome.new)} new bulb(s)")
        for bulb in outcome.new:
            kind = "BLE" if bulb.is_ble else "Wi-Fi"
            step(f"{bulb.name}  {bulb.ip_address}  {bulb.mac_address}  [{kind}]")

        if self.args.add_all:
            added = self.home.add_all_discovered_bulbs()
            success(f"Saved {len(added)} bulb(s)")
        else:
            cmd("Re-run with --add-all to save them")

    def show_energy(self):
        section("Energy usage")
        result(f"Today: {self.home.usage_today():.2f} Wh")
        for bulb in self.home.bulbs:
            say(f"{bulb.name}: {self.home.bulb_usage_today(bulb.id):.2f} Wh", extra_indent=2)
        subsection("Last 7 days")
        for day, wh in self.home.daily_usage(7):
            say(f"{day}  {wh:.2f} Wh")

    def watch(self):
        """Run the poll loop in the foreground until Ctrl+C."""
        section("Watching bulbs")
        seen = {}

        def show(bulbs):
            for bulb in bulbs:
                line = describe_bulb(bulb)
                if seen.get(bulb.id) != line:
                    seen[bulb.id] = line
                    result(line)

        unsubscribe = self.home.repository.subscribe_bulbs(show)
        show(self.home.bulbs)
        info("Press Ctrl+C to stop")
        self.home.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            success("Stopped")
        finally:
            unsubscribe()
            self.home.stop()
