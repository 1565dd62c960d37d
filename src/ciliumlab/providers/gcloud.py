"""
gcloud channel — SSH and SCP to lab VMs through the gcloud CLI.

Authentication (OS Login or project SSH keys) is gcloud's business; this
module only shapes the commands and reports exit codes.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

logger = logging.getLogger("ciliumlab.providers.gcloud")

Runner = Callable[..., subprocess.CompletedProcess]

PROBE_TIMEOUT = 60
PROBE_CONNECT_TIMEOUT = 10
COPY_TIMEOUT = 300


def _run(cmd: List[str], capture: bool = True, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    """Run a command.

    Args:
        cmd: Command and arguments.
        capture: Capture stdout/stderr instead of streaming them.
        timeout: Seconds before the command is killed.

    Returns:
        CompletedProcess with the exit status.
    """
    return subprocess.run(
        cmd, capture_output=capture, text=True, timeout=timeout, check=False,
    )


class GcloudChannel:
    """Remote command and file-transfer channel for one zone.

    Args:
        zone: Compute zone of the target machines.
        project: GCP project; omitted from commands when empty.
        runner: Replacement for subprocess.run (tests).
        gcloud: Path to the gcloud binary.
    """

    def __init__(
        self,
        zone: str,
        project: str = "",
        runner: Optional[Runner] = None,
        gcloud: str = "gcloud",
    ) -> None:
        self._zone = zone
        self._project = project
        self._runner = runner or _run
        self._gcloud = gcloud

    def _base(self, *args: str) -> List[str]:
        cmd = [self._gcloud, "compute", *args, f"--zone={self._zone}"]
        if self._project:
            cmd.append(f"--project={self._project}")
        return cmd

    def ssh_command(self, machine: str, command: str) -> List[str]:
        """Build the gcloud ssh invocation for a remote command."""
        return self._base("ssh", machine, f"--command={command}")

    def probe(self, machine: str) -> bool:
        """One SSH round trip. No internal retries.

        Args:
            machine: Instance name.

        Returns:
            True if ``echo ready`` succeeded.
        """
        cmd = self._base(
            "ssh", machine,
            "--command=echo ready",
            "--quiet",
            f"--ssh-flag=-o ConnectTimeout={PROBE_CONNECT_TIMEOUT}",
        )
        try:
            result = self._runner(cmd, capture=True, timeout=PROBE_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.debug("SSH probe to %s timed out", machine)
            return False
        except OSError as exc:
            logger.warning("Cannot reach %s over SSH, gcloud did not start: %s", machine, exc)
            return False
        return result.returncode == 0

    def copy(self, local: Path, machine: str, remote: str = "~/") -> subprocess.CompletedProcess:
        """Copy a local file onto the machine.

        Returns:
            CompletedProcess of the scp call (stderr captured).
        """
        cmd = self._base("scp", str(local), f"{machine}:{remote}")
        logger.info("Copying %s to %s:%s", local.name, machine, remote)
        return self._runner(cmd, capture=True, timeout=COPY_TIMEOUT)

    def run(self, machine: str, command: str) -> subprocess.CompletedProcess:
        """Run a command on the machine, streaming output, until it exits."""
        logger.info("Running on %s: %s", machine, command)
        return self._runner(self.ssh_command(machine, command), capture=False, timeout=None)


def detect_project(runner: Optional[Runner] = None, gcloud: str = "gcloud") -> Optional[str]:
    """Read the active project from ``gcloud config``.

    Returns:
        Project ID, or None if gcloud is missing or no project is set.
    """
    run = runner or _run
    try:
        result = run([gcloud, "config", "get-value", "project"], capture=True, timeout=30)
    except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
        logger.warning("Could not query gcloud for the active project: %s", exc)
        return None
    project = (result.stdout or "").strip()
    if result.returncode != 0 or not project or "(unset)" in project:
        return None
    return project
