#!/usr/bin/env python3
"""
SmartControl Tool
Discover and control WiZ Wi-Fi bulbs on the local network over UDP.
"""

import argparse
import os
import shutil
import sys
from pathlib import Path

from smartcontrol.command_handler import CommandHandler
from smartcontrol.constants import BLE_SCAN_DURATION, IP_SCAN_BATCH_SIZE, POLL_INTERVAL
from smartcontrol.controller import BulbController
from smartcontrol.discovery import BulbDiscovery
from smartcontrol.home import SmartHome
from smartcontrol.log import cmd, configure, debug, info, section, subsection
from smartcontrol.refresh import RefreshLoop
from smartcontrol.storage import DeviceRepository, EnergyRepository
from smartcontrol.utils import get_config_dir


def _invocation_cmd() -> str:
    """Return the correct Python invocation for the user's OS."""
    if os.name == "nt":
        return "py -3" if shutil.which("py") else "python"
    return "python3"


def _print_usage_examples():
    section("SmartControl")
    info("Discover and control WiZ bulbs on your local network.")
    subsection("Examples")
    tool = f"{_invocation_cmd()} smartcontrol_tool.py"
    cmd(f"DISCOVER:    {tool} --discover --add-all")
    cmd(f"LIST:        {tool} --list")
    cmd(f"ON:          {tool} --bulb Kitchen --on")
    cmd(f"COLOR:       {tool} --bulb Kitchen --color 255 0 0")
    cmd(f"SCENE:       {tool} --bulb Kitchen --scene fireplace")
    cmd(f"GROUP:       {tool} --create-group Downstairs Kitchen Hall")
    cmd(f"GROUP ON:    {tool} --group Downstairs --group-on")
    cmd(f"UDP STATUS:  {tool} --ip 192.168.1.50 --udp-status")
    cmd(f"WATCH:       {tool} --watch")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SmartControl Local Bulb Tool",
        formatter_class=argparse.RawTextHelpFormatter,
    )

    discovery_group = parser.add_argument_group("Discovery")
    discovery_group.add_argument(
        "--discover", action="store_true", help="Find bulbs via broadcast, IP scan and BLE."
    )
    discovery_group.add_argument(
        "--no-ble", action="store_true", help="Skip the Bluetooth LE scan."
    )
    discovery_group.add_argument(
        "--add-all", action="store_true", help="Save every newly discovered bulb."
    )
    discovery_group.add_argument(
        "--batch-size",
        type=int,
        default=IP_SCAN_BATCH_SIZE,
        help=f"Concurrent probes during the IP scan (default: {IP_SCAN_BATCH_SIZE}).",
    )

    udp_group = parser.add_argument_group("UDP Control (Local Network)")
    udp_group.add_argument("--ip", help="IP address of the bulb for direct UDP control.")
    udp_group.add_argument("--udp-on", action="store_true", help="Turn the bulb on via UDP.")
    udp_group.add_argument("--udp-off", action="store_true", help="Turn the bulb off via UDP.")
    udp_group.add_argument("--udp-brightness", type=int, help="Set brightness via UDP (10-100).")
    udp_group.add_argument(
        "--udp-color", nargs=3, type=int, metavar=("R", "G", "B"),
        help="Set color via UDP (0-255 for each).",
    )
    udp_group.add_argument("--udp-temp", type=int, help="Set color temperature via UDP (Kelvin).")
    udp_group.add_argument("--udp-scene", help="Activate a scene via UDP (see --list-scenes).")
    udp_group.add_argument("--udp-status", action="store_true", help="Query the bulb state (getPilot).")
    udp_group.add_argument("--udp-json", help="Send a custom JSON payload via UDP.")

    control_group = parser.add_argument_group("Saved Bulb Control")
    control_group.add_argument("--bulb", help="Saved bulb to control (id, MAC, IP or name).")
    control_group.add_argument("--on", action="store_true", help="Turn the bulb on.")
    control_group.add_argument("--off", action="store_true", help="Turn the bulb off.")
    control_group.add_argument("--toggle", action="store_true", help="Toggle the bulb's power state.")
    control_group.add_argument("--brightness", type=int, help="Set brightness (0-100).")
    control_group.add_argument(
        "--color", nargs=3, type=int, metavar=("R", "G", "B"), help="Set color (0-255 for each)."
    )
    control_group.add_argument(
        "--color-temp", type=int, help="Set color temperature in Kelvin (2700-6500)."
    )
    control_group.add_argument("--scene", help="Activate a scene by name.")
    control_group.add_argument("--status", action="store_true", help="Query and store the bulb's state.")

    manage_group = parser.add_argument_group("Bulb Management")
    manage_group.add_argument("--list", action="store_true", help="List saved bulbs and groups.")
    manage_group.add_argument("--add", nargs=2, metavar=("NAME", "IP"), help="Save a bulb manually.")
    manage_group.add_argument(
        "--delete", action="store_true", help="Delete the bulb given by --bulb or the group given by --group."
    )
    manage_group.add_argument("--wattage", type=float, help="Set the wattage of the bulb given by --bulb.")

    group_group = parser.add_argument_group("Groups")
    group_group.add_argument(
        "--create-group", nargs="+", metavar="NAME_THEN_BULBS",
        help="Create a group: a name followed by the bulbs in it.",
    )
    group_group.add_argument("--group", help="Group to control (id or name).")
    group_group.add_argument("--group-on", action="store_true", help="Turn every bulb in the group on.")
    group_group.add_argument("--group-off", action="store_true", help="Turn every bulb in the group off.")
    group_group.add_argument("--group-toggle", action="store_true", help="Toggle the group.")
    group_group.add_argument("--group-brightness", type=int, help="Set brightness for the group (0-100).")
    group_group.add_argument(
        "--group-color", nargs=3, type=int, metavar=("R", "G", "B"), help="Set color for the group."
    )
    group_group.add_argument("--group-temp", type=int, help="Set color temperature for the group (Kelvin).")
    group_group.add_argument("--group-scene", help="Activate a scene on every bulb in the group.")

    parser.add_argument("--watch", action="store_true", help="Poll saved bulbs and print changes.")
    parser.add_argument(
        "--interval", type=float, default=POLL_INTERVAL,
        help=f"Poll interval for --watch in seconds (default: {POLL_INTERVAL:g}).",
    )
    parser.add_argument("--energy", action="store_true", help="Show energy usage.")
    parser.add_argument("--list-scenes", action="store_true", help="List built-in scenes.")
    parser.add_argument("--config-dir", help="Where bulbs, groups and energy data are stored.")
    parser.add_argument("--verbose", action="store_true", help="Show debug + error logs")
    parser.add_argument("--show-payloads", action="store_true", help="Print raw UDP payloads")
    return parser


def build_home(args) -> SmartHome:
    config_dir = Path(args.config_dir).expanduser() if args.config_dir else get_config_dir()
    debug(f"Using config directory {config_dir}")
    repository = DeviceRepository(config_dir / "devices.json")
    energy = EnergyRepository(config_dir / "energy.json")
    controller = BulbController()
    discovery = BulbDiscovery(
        use_ble=not args.no_ble,
        batch_size=args.batch_size,
        ble_duration=BLE_SCAN_DURATION,
    )
    refresh = RefreshLoop(repository, energy, controller, interval=args.interval)
    return SmartHome(repository, energy, controller=controller, discovery=discovery, refresh=refresh)


def main():
    parser = build_parser()
    args = parser.parse_args()
    configure(verbose=args.verbose, show_payloads=args.show_payloads)

    if args.batch_size < 1:
        parser.error("--batch-size must be at least 1")
    if args.interval <= 0:
        parser.error("--interval must be positive")

    home = build_home(args)
    cmd_handler = CommandHandler(args, home)

    # Direct UDP commands take precedence; they never touch saved state
    if args.ip:
        cmd_handler.handle_udp_commands()
    elif args.list_scenes:
        cmd_handler.list_scenes()
    elif args.discover:
        cmd_handler.handle_discovery()
    elif args.add:
        cmd_handler.add_bulb()
    elif args.create_group:
        cmd_handler.create_group()
    elif args.bulb:
        cmd_handler.handle_bulb_commands()
    elif args.group:
        cmd_handler.handle_group_commands()
    elif args.list:
        cmd_handler.list_bulbs()
    elif args.energy:
        cmd_handler.show_energy()
    elif args.watch:
        cmd_handler.watch()
        return
    else:
        _print_usage_examples()
    home.controller.close()


if __name__ == "__main__":
    if sys.version_info < (3, 8):
        print("This tool requires Python 3.8+. On Linux/macOS run with 'python3'. On Windows use 'py -3' or ensure 'python' is Python 3.")
        sys.exit(1)
    main()
