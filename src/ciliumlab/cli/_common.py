"""Shared utilities for all CLI command modules.

Provides the Rich console instance, logging setup, and the error
handler that turns LabErrors into exit codes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .. import LAB_HOME
from ..config import LabConfig, lab_home, load_config
from ..errors import LabError
from ..models import MachineState, RunReport

console = Console()

LOG_DIR = "logs"
LOG_FILE = "ciliumlab.log"


def setup_logging(home: Path, verbose: bool = False) -> None:
    """Configure console and file logging once per process.

    Args:
        home: Lab home; the log file goes to ``<home>/logs/ciliumlab.log``.
        verbose: INFO on the console instead of WARNING.
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    log_dir = home / LOG_DIR
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logging.getLogger("ciliumlab.cli").warning("No log file (%s): %s", log_dir, exc)
        return
    log_path = (log_dir / LOG_FILE).resolve()
    pkg_logger = logging.getLogger("ciliumlab")
    for existing in pkg_logger.handlers:
        if isinstance(existing, logging.FileHandler) and Path(existing.baseFilename) == log_path:
            return
    handler = logging.FileHandler(log_path)
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s")
    )
    handler.setLevel(logging.INFO)
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(logging.INFO)


class LabContext:
    """Per-invocation state shared by every command."""

    def __init__(self, home: Optional[str] = None, config_path: Optional[str] = None) -> None:
        self.home = lab_home(Path(home or LAB_HOME))
        self.config: LabConfig = load_config(
            Path(config_path).expanduser() if config_path else None, home=self.home,
        )


pass_lab = click.make_pass_decorator(LabContext)


def fail(exc: LabError) -> None:
    """Print an actionable error and exit with its code."""
    console.print(f"\n  [bold red]Error:[/] {exc}\n")
    raise SystemExit(exc.exit_code)


_STATE_STYLE = {
    MachineState.PROVISIONED: "green",
    MachineState.FAILED: "red",
    MachineState.PENDING: "dim",
}


def machine_table(report: RunReport, zone: str) -> Table:
    """Render per-machine results."""
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Machine", style="cyan")
    table.add_column("State")
    table.add_column("External IP")
    table.add_column("SSH")
    for record in report.per_machine:
        style = _STATE_STYLE.get(record.state, "yellow")
        table.add_row(
            record.name,
            f"[{style}]{record.state.value}[/]",
            record.external_ip or "-",
            f"gcloud compute ssh {record.name} --zone={zone}",
        )
    return table
