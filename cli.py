#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
erp-client Unified CLI Entry Point

Usage:
    python cli.py status -c config.yaml            # Show online/paused/queue length
    python cli.py queue -c config.yaml             # List queued requests
    python cli.py flush -c config.yaml             # Replay the durable queue once
    python cli.py clear -c config.yaml             # Delete every queued request
    python cli.py dead-letters [--clear]           # List (or clear) dead letters
    python cli.py health -c config.yaml            # Probe the ERP health endpoint
    python cli.py serve --port 8790                # Start control server
    python cli.py version                          # Show version info
"""

import argparse
import asyncio
import json
import os
import sys

# Fix Windows console encoding
if sys.platform == 'win32':
    try:
        sys.stdout.reconfigure(encoding='utf-8', errors='replace')
        sys.stderr.reconfigure(encoding='utf-8', errors='replace')
    except Exception:
        pass


def _config_path(args):
    """Config file is optional; fall back to defaults when it does not exist"""
    path = getattr(args, "config", None)
    if path and os.path.exists(path):
        return path
    return None


def _print_json(payload):
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _run_with_client(args, action, start=False):
    """Build a client from config, run an async action against it, then close it"""
    from erp_client.config import get_nested, init_logging, load_merged_config
    from erp_client.core import build_client

    config = load_merged_config(_config_path(args))
    init_logging(get_nested(config, "global", "log"))

    async def runner():
        client = build_client(config)
        try:
            if start:
                await client.start()
            return await action(client)
        finally:
            await client.close()

    return asyncio.run(runner())


def cmd_status(args):
    """Show client status"""
    async def action(client):
        client.state.is_online = await client.health_check()
        return await client.get_status()

    _print_json(_run_with_client(args, action))
    return 0


def cmd_queue(args):
    """List queued requests"""
    async def action(client):
        return [record.to_dict() for record in await client.get_queue()]

    records = _run_with_client(args, action)
    _print_json(records)
    print(f"\n{len(records)} queued request(s)")
    return 0


def cmd_flush(args):
    """Replay the durable queue"""
    async def action(client):
        report = await client.flush_queue()
        return report.to_dict()

    report = _run_with_client(args, action, start=True)
    _print_json(report)
    if report["skipped"]:
        print("\n[--] Skipped: client is offline or paused")
    return 0


def cmd_clear(args):
    """Delete every queued request"""
    if not args.yes:
        answer = input("Delete every queued request? [y/N] ").strip().lower()
        if answer not in ("y", "yes"):
            print("Aborted")
            return 1

    removed = _run_with_client(args, lambda client: client.clear_queue())
    print(f"[OK] Removed {removed} queued request(s)")
    return 0


def cmd_dead_letters(args):
    """List or clear dead letters"""
    if args.clear:
        removed = _run_with_client(args, lambda client: client.clear_dead_letters())
        print(f"[OK] Removed {removed} dead letter(s)")
        return 0

    async def action(client):
        return [record.to_dict() for record in await client.get_dead_letters()]

    records = _run_with_client(args, action)
    _print_json(records)
    print(f"\n{len(records)} dead letter(s)")
    return 0


def cmd_health(args):
    """Probe the ERP health endpoint"""
    healthy = _run_with_client(args, lambda client: client.health_check())
    if healthy:
        print("[OK] Backend reachable")
        return 0
    print("[--] Backend unreachable")
    return 1


def cmd_serve(args):
    """Start control server"""
    from erp_client.control import run_control_server

    run_control_server(
        config_path=_config_path(args),
        host=args.host,
        port=args.port,
    )
    return 0


def cmd_version(args):
    """Show version info"""
    from erp_client import __version__
    print(f"erp-client v{__version__}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="erp-client",
        description="erp-client: offline-first resilient request client for the ERP backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def add_command(name, func, help_text):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("-c", "--config", default="config.yaml", help="Config file path")
        sub.set_defaults(func=func)
        return sub

    add_command("status", cmd_status, "Show client status")
    add_command("queue", cmd_queue, "List queued requests")
    add_command("flush", cmd_flush, "Replay the durable queue once")

    p_clear = add_command("clear", cmd_clear, "Delete every queued request")
    p_clear.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")

    p_dead = add_command("dead-letters", cmd_dead_letters, "List dead letters")
    p_dead.add_argument("--clear", action="store_true", help="Delete every dead letter")

    add_command("health", cmd_health, "Probe the ERP health endpoint")

    p_serve = add_command("serve", cmd_serve, "Start control server")
    p_serve.add_argument("--host", default=None, help="Listen address")
    p_serve.add_argument("-p", "--port", type=int, default=None, help="Listen port")

    add_command("version", cmd_version, "Show version info")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1
    except Exception as e:
        print(f"\n[ERROR] {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
