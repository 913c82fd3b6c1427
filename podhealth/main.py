"""Entry point for podhealth."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from podhealth.config import settings
from podhealth.errors import PlatformNotSupported
from podhealth.health.models import CycleReport, StepStatus
from podhealth.pod import Pod

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

_STATUS_STYLE = {
    StepStatus.OK: "green",
    StepStatus.TOLERATED: "yellow",
    StepStatus.FAILED: "red",
}


def run_server() -> None:
    """Start the API server; health checks run for as long as it is up."""
    console.print(Panel(f"Starting podhealth ({settings.server_id})", style="bold green"))
    uvicorn.run(
        "podhealth.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


async def _check_once() -> CycleReport:
    pod = Pod()
    try:
        pod.health_check_manager.resources.init()
    except PlatformNotSupported:
        console.print("[yellow]CPU and memory usage metrics are not supported on this platform.[/yellow]")
    try:
        await pod.reload_runtime_settings()
        return await pod.health_check_manager.executor.run_cycle()
    finally:
        await pod.shutdown()


def run_check() -> None:
    """Run a single health check cycle now and print what each step did."""
    report = asyncio.run(_check_once())

    table = Table(title=f"Health check cycle — {settings.server_id}")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Detail")
    for outcome in report.outcomes:
        style = _STATUS_STYLE[outcome.status]
        detail = ", ".join(f"{k}={v}" for k, v in outcome.detail.items())
        if outcome.error is not None:
            detail = f"{type(outcome.error).__name__}: {outcome.error}"
        table.add_row(outcome.step, f"[{style}]{outcome.status.value}[/{style}]", detail)
    console.print(table)

    if any(o.status is StepStatus.FAILED for o in report.outcomes):
        sys.exit(1)


def main() -> None:
    parser = argparse.ArgumentParser(description="podhealth — once-a-minute server health checks")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server with scheduled health checks")
    sub.add_parser("check", help="Run one health check cycle now")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "check":
        run_check()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
