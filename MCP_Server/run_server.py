#!/usr/bin/env python3
"""Stable entrypoint for launching SVStudio MCP from any working directory."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Sequence


_EXPECTED_TOOLS = (
    "get_project_info",
    "list_tracks",
    "get_track_notes",
    "add_notes",
    "edit_notes",
    "add_track",
)
_PROJECT_RESOURCE_URI = "svstudio://project"
_TRACK_RESOURCE_TEMPLATE = "svstudio://track/{track_id}"


def _ensure_packages_importable() -> None:
    # MCP_Server and SVStudioMCP_Host_Script sit side by side one level up.
    checkout = str(Path(__file__).resolve().parent.parent)
    if checkout not in sys.path:
        sys.path.insert(0, checkout)


async def _collect_registrations(mcp) -> dict:
    from mcp.server.fastmcp import FastMCP

    tools = await mcp.list_tools()
    # Static resources only: the server's own listing round-trips list_tracks to the host.
    resources = await FastMCP.list_resources(mcp)
    templates = await mcp.list_resource_templates()
    return {
        "tools": sorted(tool.name for tool in tools),
        "resources": sorted(str(resource.uri) for resource in resources),
        "templates": sorted(template.uriTemplate for template in templates),
    }


def _smoke_check() -> int:
    from MCP_Server import server

    try:
        registered = asyncio.run(_collect_registrations(server.mcp))
    except Exception as exc:
        print(f"SMOKE_CHECK_FAILED: {exc}", file=sys.stderr)
        return 1

    missing = [name for name in _EXPECTED_TOOLS if name not in registered["tools"]]
    if _PROJECT_RESOURCE_URI not in registered["resources"]:
        missing.append(_PROJECT_RESOURCE_URI)
    if _TRACK_RESOURCE_TEMPLATE not in registered["templates"]:
        missing.append(_TRACK_RESOURCE_TEMPLATE)
    if missing:
        print(f"SMOKE_CHECK_FAILED: not registered: {', '.join(missing)}", file=sys.stderr)
        return 1

    print(
        f"SMOKE_CHECK_OK: {len(registered['tools'])} tools, "
        f"{len(registered['resources'])} resources, {len(registered['templates'])} resource templates"
    )
    return 0


def _status_report() -> int:
    from MCP_Server.pathing import read_liveness_state, resolve_pathing

    resolved = resolve_pathing()
    report = dict(resolved)
    report["liveness"] = read_liveness_state(resolved["state_file"])
    report["state_file_exists"] = os.path.exists(resolved["state_file"])
    for key in ("command_file", "response_file"):
        path = resolved[key]
        report[key + "_pending"] = os.path.exists(path) and os.path.getsize(path) > 0
    print(json.dumps(report, indent=2))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run the SVStudio MCP server, or inspect its registrations and mailbox files."
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--smoke",
        action="store_true",
        help="Validate imports plus tool and resource registration without starting the server loop.",
    )
    mode.add_argument(
        "--status",
        action="store_true",
        help="Print resolved mailbox paths and the host script liveness state as JSON.",
    )
    args = parser.parse_args(argv)

    _ensure_packages_importable()

    if args.smoke:
        return _smoke_check()
    if args.status:
        return _status_report()

    from MCP_Server.server import main as server_main

    server_main()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
