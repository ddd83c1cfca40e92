"""
MCP Fleet CLI: entry points for the manager, the tool servers and backups.

Usage:
    mcpfleet manager [--host HOST] [--port PORT]
    mcpfleet github-server
    mcpfleet search-server
    mcpfleet backups list|create|restore NAME [--server-url URL]

Commands:
    manager         Run the registry HTTP server.
    github-server   Serve GitHub tools over stdio (requires GITHUB_TOKEN).
    search-server   Serve file search tools over stdio.
    backups         Manage registry snapshots through a running manager.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional, Sequence

from mcpfleet.core.config import FleetConfig
from mcpfleet.sdk.client import DEFAULT_BASE_URL, FleetClient
from mcpfleet.sdk.errors import ManagerClientError

logger = logging.getLogger("MCPFleet.cli")


def _configure_stdio_logging(config: FleetConfig) -> None:
    # stdout carries the protocol; logs go to stderr only.
    logging.basicConfig(
        level=getattr(logging, config.server.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────

def cmd_manager(args: argparse.Namespace) -> int:
    from mcpfleet.server import serve

    config = FleetConfig.from_env()
    return serve(config, host=args.host, port=args.port)


def cmd_github_server(args: argparse.Namespace) -> int:
    from mcpfleet.tools.github import build_github_server

    config = FleetConfig.from_env()
    _configure_stdio_logging(config)
    try:
        server = build_github_server(config)
    except RuntimeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    logger.info("GitHub MCP server running on stdio")
    server.serve()
    return 0


def cmd_search_server(args: argparse.Namespace) -> int:
    from mcpfleet.tools.search import build_search_server

    config = FleetConfig.from_env()
    _configure_stdio_logging(config)
    server = build_search_server(config)
    logger.info("Search MCP server running on stdio")
    server.serve()
    return 0


def cmd_backups(args: argparse.Namespace, client: Optional[FleetClient] = None) -> int:
    """List, create or restore snapshots on a running manager."""
    owns_client = client is None
    client = client or FleetClient(base_url=args.server_url, timeout=args.timeout_seconds)
    try:
        if args.backup_command == "list":
            names = client.list_backups()
            if args.json:
                print(json.dumps(names))
            else:
                for name in names:
                    print(name)
        elif args.backup_command == "create":
            print(client.create_backup())
        elif args.backup_command == "restore":
            restored = client.restore_backup(args.name)
            print(f"Restored {restored} server(s) from {args.name}")
        else:
            print(f"Unknown backups command: {args.backup_command}", file=sys.stderr)
            return 1
    except ManagerClientError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        if owns_client:
            client.close()
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# Argument parser
# ─────────────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcpfleet",
        description="MCP Fleet: tool servers and their configuration manager.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  mcpfleet manager --port 3500\n"
               "  GITHUB_TOKEN=... mcpfleet github-server\n"
               "  mcpfleet search-server\n"
               "  mcpfleet backups create\n"
               "  mcpfleet backups restore settings-20250101T000000000000Z.json\n",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    manager = subparsers.add_parser("manager", help="Run the registry HTTP server.")
    manager.add_argument("--host", default=None, help="Host to bind to (default: MCPFLEET_HOST).")
    manager.add_argument("--port", type=int, default=None, help="Port to bind to (default: MCPFLEET_PORT).")
    manager.set_defaults(handler=cmd_manager)

    github = subparsers.add_parser("github-server", help="Serve GitHub tools over stdio.")
    github.set_defaults(handler=cmd_github_server)

    search = subparsers.add_parser("search-server", help="Serve file search tools over stdio.")
    search.set_defaults(handler=cmd_search_server)

    backups = subparsers.add_parser("backups", help="Manage registry snapshots.")
    backups.add_argument(
        "--server-url",
        default=DEFAULT_BASE_URL,
        metavar="URL",
        help="Manager base URL (default: MCPFLEET_MANAGER_URL or http://localhost:3500).",
    )
    backups.add_argument(
        "--timeout-seconds",
        type=float,
        default=10.0,
        help="HTTP timeout for manager requests.",
    )
    backup_commands = backups.add_subparsers(dest="backup_command", required=True)
    backup_list = backup_commands.add_parser("list", help="List snapshot names.")
    backup_list.add_argument("--json", action="store_true", default=False, help="Print as a JSON array.")
    backup_commands.add_parser("create", help="Snapshot the current registry.")
    restore = backup_commands.add_parser("restore", help="Replace the registry from a snapshot.")
    restore.add_argument("name", help="Snapshot file name, e.g. settings-<token>.json")
    backups.set_defaults(handler=cmd_backups)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
