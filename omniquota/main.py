"""Entry point for the omniquota dashboard engine."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import uvicorn
import yaml
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from omniquota.config import settings
from omniquota.connector.client import ConnectorClient, ConnectorError, ConnectorOfflineError
from omniquota.display import render_snapshot
from omniquota.quota.views import snapshot_from_payload

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel("Starting omniquota API Server", style="bold green"))
    uvicorn.run(
        "omniquota.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def load_payload(path: str) -> Any:
    """Read a dashboard payload or account list from a JSON/YAML file."""
    with Path(path).open(encoding="utf-8") as f:
        return yaml.safe_load(f)


def fetch_payload() -> dict[str, Any]:
    client = ConnectorClient(
        base_url=settings.connector_base_url,
        api_key=settings.connector_api_key,
        timeout=settings.connector_timeout,
    )
    with console.status(f"[bold green]Fetching {client.base_url}/api/dashboard..."):
        return client.dashboard()


def run_snapshot(path: str | None, as_json: bool) -> int:
    """Build one snapshot and print it.  Returns the process exit code."""
    try:
        payload = load_payload(path) if path else fetch_payload()
    except ConnectorOfflineError as e:
        console.print(f"[red]Connector offline:[/red] {escape(str(e))}")
        return 1
    except ConnectorError as e:
        console.print(f"[red]Connector error {e.status_code}:[/red] {escape(e.detail)}")
        return 1
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        console.print(f"[red]Could not read {escape(str(path))}:[/red] {escape(str(e))}")
        return 1

    snapshot = snapshot_from_payload(payload, settings)
    if as_json:
        print(json.dumps(snapshot.to_dict(), indent=2))
    else:
        render_snapshot(snapshot, console)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="omniquota quota dashboard engine")
    sub = parser.add_subparsers(dest="command")

    # Server mode
    sub.add_parser("serve", help="Start the API server")

    # One-shot snapshot
    snap_parser = sub.add_parser("snapshot", help="Print a fleet snapshot")
    snap_parser.add_argument("--file", help="Read the payload from a JSON/YAML file instead of the connector")
    snap_parser.add_argument("--json", action="store_true", help="Print the snapshot as JSON")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "snapshot":
        sys.exit(run_snapshot(args.file, args.json))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
