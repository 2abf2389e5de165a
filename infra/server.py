#!/usr/bin/env python3
"""
Workbench Service Bus Server
----------------------------
Runs the FastAPI service bus over a workspace.

Usage:
    python -m infra.server --root /path/to/project --port 8000
    python -m infra.server --root . --config config/workbench.yaml --read-only
"""

from pathlib import Path
import argparse
import logging
import sys

import uvicorn
from rich.console import Console

from infra.config import load_settings
from infra.logging import configure_logging
from infra.service_bus import create_app
from tools.registry import create_default_registry

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Workbench Tool Server")
    parser.add_argument("--root", default=".", help="Workspace root (every tool is confined to it)")
    parser.add_argument("--config", default=None, help="YAML settings file")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--read-only", action="store_true", help="Only register read/list/search tools")
    parser.add_argument("--no-shell", action="store_true", help="Do not register run_shell_command")
    parser.add_argument("--log-dir", default=None, help="Also write JSON logs to this directory")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    configure_logging(
        level=getattr(logging, args.log_level),
        log_dir=args.log_dir,
        file=args.log_dir is not None,
    )

    try:
        settings = load_settings(args.config)
    except ValueError as e:
        console.print(f"[red]Invalid settings:[/red] {e}")
        return 2

    if args.read_only:
        settings = settings.with_overrides(read_only=True)
    if args.no_shell:
        settings = settings.with_overrides(shell_enabled=False)

    root = Path(args.root).expanduser()
    try:
        registry = create_default_registry(root, settings)
    except ValueError as e:
        console.print(f"[red]Invalid workspace:[/red] {e}")
        return 2

    app = create_app(registry)

    console.print(f"\n[bold green]Workbench Tool Server[/bold green]")
    console.print(f"Workspace: {registry.root}")
    console.print(f"Tools: {', '.join(registry.tool_names())}")
    console.print(f"Running on http://{args.host}:{args.port}")
    console.print(f"API docs: http://{args.host}:{args.port}/docs")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower()
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
