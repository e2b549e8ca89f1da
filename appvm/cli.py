"""CLI entry points for appvm."""

from __future__ import annotations

import argparse
import traceback
from typing import List, Optional

from appvm.balloon import AutoballoonController, format_samples
from appvm.config import load_config, prepare_config_root
from appvm.constants import DEFAULT_ADJUST_PERCENT, DEFAULT_MIN_MEMORY_MB, MIB
from appvm.exceptions import ManagerError
from appvm.lifecycle import LifecycleManager
from appvm.models import AppConfig
from appvm.utils import log


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="appvm", description="Nix application VMs on libvirt")
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    commands.add_parser("list", help="List applications")

    start = commands.add_parser("start", help="Start application")
    start.add_argument("name", help="Application name")
    start.add_argument("--verbose", action="store_true", help="Increase verbosity")

    stop = commands.add_parser("stop", help="Stop application")
    stop.add_argument("name", help="Application name")

    drop = commands.add_parser("drop", help="Remove application data")
    drop.add_argument("name", help="Application name")
    drop.add_argument("--force", action="store_true", help="Drop data even while the application is running")

    balloon = commands.add_parser("autoballoon", help="Automatically adjust/reduce app vm memory")
    balloon.add_argument(
        "--min-memory",
        type=int,
        default=DEFAULT_MIN_MEMORY_MB,
        metavar="MB",
        help=f"Set minimal memory (megabytes, default {DEFAULT_MIN_MEMORY_MB})",
    )
    balloon.add_argument(
        "--adj-memory",
        type=int,
        default=DEFAULT_ADJUST_PERCENT,
        metavar="PERCENT",
        help=f"Adjust memory amount (percents, default {DEFAULT_ADJUST_PERCENT})",
    )
    return parser


def open_client(cfg: AppConfig):
    # libvirt is only needed once a command actually talks to the hypervisor
    from appvm.hypervisor import HypervisorClient

    client = HypervisorClient(cfg)
    client.connect()
    return client


def print_list(started: List[str], available: List[str]) -> None:
    print("Started VM:")
    for name in started:
        print(f"\t {name}")
    print("\nAvailable VM:")
    for name in available:
        print(f"\t {name}")


def dispatch(args: argparse.Namespace, cfg: AppConfig, client) -> int:
    manager = LifecycleManager(cfg, client)
    if args.command == "list":
        started, available = manager.list_applications()
        print_list(started, available)
    elif args.command == "start":
        manager.start(args.name, verbose=args.verbose)
    elif args.command == "stop":
        manager.stop(args.name)
    elif args.command == "drop":
        manager.drop(args.name, force=args.force)
    elif args.command == "autoballoon":
        if args.min_memory < 0 or args.adj_memory < 0:
            raise ManagerError("--min-memory and --adj-memory must not be negative")
        controller = AutoballoonController(cfg, client)
        samples = controller.run(args.min_memory * MIB, args.adj_memory)
        print(format_samples(samples))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    client = None
    try:
        cfg = load_config()
        prepare_config_root(cfg)
        client = open_client(cfg)
        return dispatch(args, cfg, client)
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1
    except OSError as exc:
        log("ERROR", f"I/O error: {exc}")
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        traceback.print_exc()
        return 1
    finally:
        if client is not None:
            client.close()
