"""
Preflight checks — local tools a lab run needs before it starts.

Checks for:
  - Python 3.10+ (already running, but verify version)
  - gcloud CLI (SSH/SCP channel and project discovery)

Each check returns a ToolCheck carrying the version found and, when
missing, a hint on how to install it.
"""

from __future__ import annotations

import platform
import shutil
import subprocess
import sys
from dataclasses import dataclass
from enum import Enum
from typing import List

from .errors import PreconditionError

GCLOUD_INSTALL_URL = "https://cloud.google.com/sdk/docs/install"
PYTHON_DOWNLOAD_URL = "https://python.org/downloads/"
MIN_PYTHON = (3, 10)


class ToolStatus(str, Enum):
    """Status of a system tool."""
    INSTALLED = "installed"
    MISSING = "missing"


@dataclass
class ToolCheck:
    """Result of checking a single system tool."""

    name: str
    status: ToolStatus
    version: str = ""
    download_url: str = ""
    install_note: str = ""

    @property
    def installed(self) -> bool:
        """Whether the tool is installed."""
        return self.status == ToolStatus.INSTALLED


@dataclass
class PreflightResult:
    """Combined result of all preflight checks."""

    python: ToolCheck
    gcloud: ToolCheck

    @property
    def checks(self) -> List[ToolCheck]:
        return [self.python, self.gcloud]

    @property
    def all_ok(self) -> bool:
        """True if every tool is present."""
        return all(c.installed for c in self.checks)

    @property
    def missing(self) -> List[ToolCheck]:
        """Tools that still need installing."""
        return [c for c in self.checks if not c.installed]


def check_python() -> ToolCheck:
    """Check the running Python version.

    Returns:
        ToolCheck for Python.
    """
    ok = sys.version_info[:2] >= MIN_PYTHON
    return ToolCheck(
        name="Python",
        status=ToolStatus.INSTALLED if ok else ToolStatus.MISSING,
        version=platform.python_version(),
        download_url=PYTHON_DOWNLOAD_URL,
        install_note="" if ok else "ciliumlab needs Python %d.%d or newer." % MIN_PYTHON,
    )


def check_gcloud() -> ToolCheck:
    """Check that the gcloud CLI is on PATH.

    Returns:
        ToolCheck for gcloud.
    """
    binary = shutil.which("gcloud")
    if not binary:
        return ToolCheck(
            name="gcloud",
            status=ToolStatus.MISSING,
            download_url=GCLOUD_INSTALL_URL,
            install_note="gcloud copies the install script to each VM and runs it over SSH.",
        )

    version = ""
    try:
        result = subprocess.run(
            [binary, "--version"],
            capture_output=True, text=True, timeout=30,
        )
        if result.returncode == 0:
            version = result.stdout.strip().split("\n")[0][:60]
    except (OSError, subprocess.TimeoutExpired):
        # Present but slow or broken; the first real command will tell.
        version = "unknown"
    return ToolCheck(name="gcloud", status=ToolStatus.INSTALLED, version=version)


def run_preflight() -> PreflightResult:
    """Run every check."""
    return PreflightResult(python=check_python(), gcloud=check_gcloud())


def require_tools() -> PreflightResult:
    """Run preflight and fail loudly if anything is missing.

    Raises:
        PreconditionError: Naming each missing tool and where to get it.
    """
    result = run_preflight()
    if not result.all_ok:
        lines = [
            f"{c.name} not found: {c.install_note or 'required'} ({c.download_url})"
            for c in result.missing
        ]
        raise PreconditionError("; ".join(lines))
    return result
