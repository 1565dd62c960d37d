"""
RemoteExecutor — copy the payload to a VM and run it there.

Two ordered steps, both required: transfer, then invoke. The invoke step
is skipped when the transfer fails. Steps inside the payload are its own
concern; nothing here retries individual remote commands.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from .models import PayloadArtifact
from .providers.gcloud import GcloudChannel

logger = logging.getLogger("ciliumlab.remote")

# Exit status reported when a step dies before gcloud returns one.
STEP_ERROR = 255


class ExecutionResult(BaseModel):
    """Outcome of one transfer+run pair."""

    exit_code: int
    captured_status: str
    step: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class RemoteExecutor:
    """Deliver a PayloadArtifact and run it synchronously.

    Args:
        channel: SSH/SCP channel for the target zone.
        workdir: Where the transient local copy of the payload is written.
    """

    def __init__(self, channel: GcloudChannel, workdir: Optional[Path] = None) -> None:
        self._channel = channel
        self._workdir = workdir

    def deliver_and_run(self, machine: str, artifact: PayloadArtifact) -> ExecutionResult:
        """Copy the artifact onto ``machine`` and execute it.

        Args:
            machine: Instance name.
            artifact: Rendered install script.

        Returns:
            ExecutionResult with the exit code of the failing step, or of
            the remote script when both steps ran.
        """
        staging = Path(tempfile.mkdtemp(prefix="ciliumlab-", dir=self._workdir))
        local = staging / artifact.filename
        try:
            local.write_text(artifact.text, encoding="utf-8")
            os.chmod(local, 0o755)

            try:
                copied = self._channel.copy(local, machine)
            except (subprocess.TimeoutExpired, OSError) as exc:
                logger.error("Copying %s to %s failed: %s", artifact.filename, machine, exc)
                return ExecutionResult(
                    exit_code=STEP_ERROR, captured_status=f"transfer failed: {exc}", step="transfer",
                )
            if copied.returncode != 0:
                detail = (copied.stderr or "").strip() or f"exit {copied.returncode}"
                logger.error("Copying %s to %s failed: %s", artifact.filename, machine, detail)
                return ExecutionResult(
                    exit_code=copied.returncode,
                    captured_status=f"transfer failed: {detail}",
                    step="transfer",
                )

            logger.info("Running %s on %s (this can take 15-20 minutes)", artifact.filename, machine)
            try:
                ran = self._channel.run(machine, f"bash {artifact.filename}")
            except (subprocess.TimeoutExpired, OSError) as exc:
                logger.error("Running %s on %s failed: %s", artifact.filename, machine, exc)
                return ExecutionResult(
                    exit_code=STEP_ERROR, captured_status=f"run failed: {exc}", step="run",
                )
            status = "completed" if ran.returncode == 0 else f"remote script exited {ran.returncode}"
            return ExecutionResult(exit_code=ran.returncode, captured_status=status, step="run")
        finally:
            local.unlink(missing_ok=True)
            staging.rmdir()
