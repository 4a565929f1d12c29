#!/usr/bin/env python3
"""
Command-line interface for the analytics buffer.

Inspect and manage the state directory of a tool, or track and flush
events by hand.

Usage:
    cli-analytics --dir .myapp status [--json]
    cli-analytics --dir .myapp --write-key KEY track "Something" -p other=stuff
    cli-analytics --dir .myapp --write-key KEY conditional-flush --above-size 15
    cli-analytics --dir .myapp disable
"""

import argparse
import json
import logging
import sys
from datetime import timedelta
from pathlib import Path

from . import gate, identity, state
from .config import AnalyticsSettings
from .errors import AnalyticsError
from .event_log import EventLog
from .tracker import Tracker


def parse_property(text):
    """Parse ``key=value``; values are JSON when they parse as JSON."""
    key, sep, raw = text.partition('=')
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got {text!r}")

    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw

    return key, value


def build_parser():
    parser = argparse.ArgumentParser(
        prog="cli-analytics",
        description="Buffered analytics for command-line tools"
    )

    parser.add_argument("--config", type=str, metavar="PATH", help="JSON settings file")
    parser.add_argument("--dir", type=str, help="State directory relative to ~")
    parser.add_argument("--write-key", type=str, help="Collector write key")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logs")

    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="Show buffer status")
    status.add_argument("--json", action="store_true", help="Output as JSON")

    sub.add_parser("events", help="Print buffered events as JSON lines")

    track = sub.add_parser("track", help="Buffer an event")
    track.add_argument("name")
    track.add_argument(
        "-p", "--property",
        dest="properties",
        action="append",
        type=parse_property,
        default=[],
        metavar="KEY=VALUE",
    )

    sub.add_parser("flush", help="Send buffered events now")

    conditional = sub.add_parser("conditional-flush", help="Send events if a threshold is crossed")
    conditional.add_argument("--above-size", type=int, help="Event count threshold")
    conditional.add_argument("--above-duration", type=float, metavar="SEC", help="Age threshold in seconds")

    sub.add_parser("enable", help="Opt back in to tracking")
    sub.add_parser("disable", help="Opt out of tracking")

    return parser


def get_status(root: Path) -> dict:
    """Collect status information for a state directory."""
    status = {
        "root": str(root),
        "enabled": gate.is_enabled(root),
        "id": None,
        "events": None,
        "last_flush": None,
        "last_flush_age_sec": None,
    }

    id_path = state.StateDirectory(root).id_path
    if id_path.exists():
        status["id"] = id_path.read_text()

    try:
        status["events"] = EventLog(root).count()
    except FileNotFoundError:
        status["events"] = 0

    try:
        status["last_flush"] = identity.last_flush(root).isoformat()
        status["last_flush_age_sec"] = round(identity.last_flush_age(root).total_seconds(), 1)
    except FileNotFoundError:
        pass

    return status


def display_status(status: dict):
    print("Analytics buffer")
    print("=" * 40)
    print(f"  state dir:  {status['root']}")
    print(f"  enabled:    {'yes' if status['enabled'] else 'no'}")
    print(f"  id:         {status['id'] or '-'}")
    print(f"  events:     {status['events']}")
    if status["last_flush"]:
        print(f"  last flush: {status['last_flush']} ({status['last_flush_age_sec']}s ago)")
    else:
        print("  last flush: never")


def run(args, settings: AnalyticsSettings) -> int:
    root = state.resolve(settings.get("dir"))
    if root is None:
        print("Warning: could not determine home directory", file=sys.stderr)
        return 1

    if args.command in ("status", "events", "enable", "disable"):
        if args.command == "status":
            status = get_status(root)
            if args.json:
                print(json.dumps(status, indent=2, default=str))
            else:
                display_status(status)
        elif args.command == "events":
            try:
                events = EventLog(root).read_all()
            except FileNotFoundError:
                events = []
            for event in events:
                print(json.dumps(event.to_dict(), ensure_ascii=False, default=str))
        elif args.command == "enable":
            gate.enable(root)
        else:
            state.ensure(root)
            gate.disable(root)
        return 0

    with Tracker(settings.to_config()) as tracker:
        if args.command == "track":
            tracker.track(args.name, dict(args.properties) or None)
        elif args.command == "flush":
            tracker.flush()
        else:
            above_size = args.above_size if args.above_size is not None else settings.above_size
            above_duration = (
                timedelta(seconds=args.above_duration)
                if args.above_duration is not None
                else settings.above_duration
            )
            decision = tracker.conditional_flush(above_size, above_duration)
            print(decision.value)

    return 0


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    settings = AnalyticsSettings.load(Path(args.config) if args.config else None)
    if args.dir:
        settings.set("dir", args.dir)
    if args.write_key:
        settings.set("write_key", args.write_key)

    try:
        return run(args, settings)
    except (OSError, ValueError, AnalyticsError) as e:
        print(f"Warning: {type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nCancelled by user")
        sys.exit(1)
