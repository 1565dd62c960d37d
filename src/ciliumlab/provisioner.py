"""
VMProvisioner — drives one machine from pending to a terminal state.

    pending -> created -> ready -> provisioned
        \\---------\\--------\\-----> failed

Each arrow is one collaborator: ResourceEnsurer, ReadinessPoller,
RemoteExecutor. A failure anywhere lands in ``failed`` with the exit
code of the matching error class; nothing here touches other machines.
"""

from __future__ import annotations

import logging
from typing import Optional

from google.api_core import exceptions as google_exceptions

from .ensure import ResourceEnsurer
from .errors import LabError, ReadinessTimeout, RemoteExecutionError, ResourceEnsureError
from .models import (
    MachineRecord,
    MachineState,
    ManagedResource,
    PayloadArtifact,
    ProvisionRequest,
    ResourceKind,
)
from .providers.base import CloudBackend
from .readiness import Readiness, ReadinessPoller
from .remote import ExecutionResult, RemoteExecutor

logger = logging.getLogger("ciliumlab.provisioner")


def instance_resource(cloud: CloudBackend, name: str, request: ProvisionRequest) -> ManagedResource:
    """Describe a lab VM as a ManagedResource."""
    return ManagedResource(
        kind=ResourceKind.COMPUTE_INSTANCE,
        name=name,
        exists=lambda: cloud.instance_exists(name),
        create=lambda: cloud.create_instance(name, request),
    )


class VMProvisioner:
    """Per-machine lifecycle.

    Args:
        cloud: Control plane backend.
        poller: SSH readiness poller.
        executor: Payload delivery.
        ensurer: Idempotent creation helper.
        remote_retries: Extra transfer+run attempts after a failure (0 or 1).
    """

    def __init__(
        self,
        cloud: CloudBackend,
        poller: ReadinessPoller,
        executor: RemoteExecutor,
        ensurer: Optional[ResourceEnsurer] = None,
        remote_retries: int = 0,
    ) -> None:
        if remote_retries not in (0, 1):
            raise ValueError("remote_retries must be 0 or 1")
        self._cloud = cloud
        self._poller = poller
        self._executor = executor
        self._ensurer = ensurer or ResourceEnsurer()
        self._remote_retries = remote_retries

    def provision(
        self,
        record: MachineRecord,
        request: ProvisionRequest,
        artifact: PayloadArtifact,
    ) -> MachineRecord:
        """Run one machine to a terminal state.

        Args:
            record: The machine's record, in ``pending``.
            request: The run's request.
            artifact: Shared install payload.

        Returns:
            The same record, now ``provisioned`` or ``failed``.
        """
        try:
            self._create(record, request)
            self._wait_ready(record)
            self._install(record, artifact)
        except LabError as exc:
            logger.error("%s failed: %s", record.name, exc)
            record.fail(str(exc), exc.exit_code)
            return record

        record.external_ip = self._lookup_ip(record.name)
        logger.info("%s provisioned", record.name)
        return record

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _create(self, record: MachineRecord, request: ProvisionRequest) -> None:
        result = self._ensurer.ensure(instance_resource(self._cloud, record.name, request))
        if not result.ok:
            raise ResourceEnsureError(f"could not create instance {record.name}: {result.cause}")
        record.advance(MachineState.CREATED)

    def _wait_ready(self, record: MachineRecord) -> None:
        logger.info("Waiting for SSH on %s", record.name)
        if self._poller.wait_ready(record.name) != Readiness.READY:
            policy = self._poller.policy
            raise ReadinessTimeout(
                f"SSH on {record.name} not ready after {policy.max_attempts} attempts "
                f"({policy.interval:.0f}s apart)"
            )
        record.advance(MachineState.READY)

    def _install(self, record: MachineRecord, artifact: PayloadArtifact) -> None:
        result: ExecutionResult = self._executor.deliver_and_run(record.name, artifact)
        attempt = 0
        while not result.ok and attempt < self._remote_retries:
            attempt += 1
            logger.warning(
                "Install on %s failed (%s); retrying once", record.name, result.captured_status,
            )
            result = self._executor.deliver_and_run(record.name, artifact)
        if not result.ok:
            raise RemoteExecutionError(
                f"install on {record.name} failed during {result.step}: {result.captured_status}"
            )
        record.advance(MachineState.PROVISIONED)

    def _lookup_ip(self, name: str) -> Optional[str]:
        try:
            return self._cloud.external_ip(name) or None
        except google_exceptions.GoogleAPIError as exc:
            logger.warning("Could not fetch external IP for %s: %s", name, exc)
            return None
