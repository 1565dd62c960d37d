"""
Orchestrator — one lab run, start to finish.

Flow:
  1. Validate the request (machine count bounds)
  2. Show the summary and ask for confirmation
  3. Check preconditions (project, API access)
  4. Ensure the shared firewall rules, once
  5. Render the payload, once
  6. Provision machines one at a time, ascending by index
  7. Aggregate

Failure policy: fail-fast by default. The first failed machine stops the
run and the untouched machines stay ``pending`` in the report. With
``keep_going`` every machine is attempted and a mixed result is
``partial``.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel

from .ensure import ResourceEnsurer
from .errors import PreconditionError, ResourceEnsureError
from .models import (
    EnsureResult,
    FirewallRuleSpec,
    MachineRecord,
    MachineState,
    ManagedResource,
    ProvisionRequest,
    ResourceKind,
    RunOutcome,
    RunReport,
    validate_machine_count,
)
from .payload import PayloadGenerator
from .providers.base import CloudBackend
from .provisioner import VMProvisioner

logger = logging.getLogger("ciliumlab.orchestrator")


class RunSummary(BaseModel):
    """What the user is asked to approve before anything is created."""

    project: str
    region: str
    zone: str
    machine_count: int
    machine_names: List[str]
    tags: List[str]
    firewall_rules: List[str]

    @classmethod
    def from_request(cls, request: ProvisionRequest) -> "RunSummary":
        return cls(
            project=request.project,
            region=request.region,
            zone=request.zone,
            machine_count=request.machine_count,
            machine_names=request.machine_names,
            tags=request.tags,
            firewall_rules=[rule.name for rule in request.firewall_rules],
        )


Confirmer = Callable[[RunSummary], bool]


def firewall_resource(
    cloud: CloudBackend, rule: FirewallRuleSpec, network: str,
) -> ManagedResource:
    """Describe a shared firewall rule as a ManagedResource."""
    return ManagedResource(
        kind=ResourceKind.NETWORK_RULE,
        name=rule.name,
        exists=lambda: cloud.firewall_exists(rule.name),
        create=lambda: cloud.create_firewall(rule, network),
    )


class Orchestrator:
    """Drives VMProvisioner over every machine in a request.

    Args:
        cloud: Control plane backend.
        provisioner: Per-machine lifecycle.
        confirm: Approval gate; None means approved.
        generator: Payload renderer.
        ensurer: Idempotent creation helper for the shared rules.
        keep_going: Attempt every machine instead of stopping at the first failure.
    """

    def __init__(
        self,
        cloud: CloudBackend,
        provisioner: VMProvisioner,
        confirm: Optional[Confirmer] = None,
        generator: Optional[PayloadGenerator] = None,
        ensurer: Optional[ResourceEnsurer] = None,
        keep_going: bool = False,
    ) -> None:
        self._cloud = cloud
        self._provisioner = provisioner
        self._confirm = confirm
        self._generator = generator or PayloadGenerator()
        self._ensurer = ensurer or ResourceEnsurer()
        self._keep_going = keep_going

    def run(self, request: ProvisionRequest) -> RunReport:
        """Execute one lab run.

        Args:
            request: The validated, immutable request.

        Returns:
            RunReport with every machine's terminal (or untouched) state.

        Raises:
            RequestValidationError: Machine count out of bounds.
            PreconditionError: No project, or the API is unreachable.
            ResourceEnsureError: A shared firewall rule could not be created.
        """
        validate_machine_count(request.machine_count)
        records = [MachineRecord(name=name) for name in request.machine_names]

        summary = RunSummary.from_request(request)
        if self._confirm is not None and not self._confirm(summary):
            logger.info("Run cancelled at confirmation")
            return RunReport(per_machine=records, overall=RunOutcome.CANCELLED)

        self._check_preconditions(request)
        shared = self._ensure_shared(request)

        artifact = self._generator.render(request)

        logger.info(
            "Provisioning %d machine(s) in %s: %s",
            request.machine_count, request.zone, ", ".join(request.machine_names),
        )
        for record in records:
            self._provisioner.provision(record, request, artifact)
            if record.state == MachineState.FAILED and not self._keep_going:
                logger.error("Stopping after %s failed", record.name)
                break

        report = RunReport(per_machine=records, shared=shared)
        report.overall = self._aggregate(records)
        logger.info(
            "Run finished: %s (%d provisioned, %d failed)",
            report.overall.value, len(report.provisioned), len(report.failed),
        )
        return report

    def _check_preconditions(self, request: ProvisionRequest) -> None:
        if not request.project:
            raise PreconditionError(
                "No GCP project set. Run: gcloud config set project YOUR_PROJECT_ID"
            )
        self._cloud.check_access()

    def _ensure_shared(self, request: ProvisionRequest) -> List[EnsureResult]:
        results = []
        for rule in request.firewall_rules:
            result = self._ensurer.ensure(firewall_resource(self._cloud, rule, request.network))
            if not result.ok:
                raise ResourceEnsureError(
                    f"could not create firewall rule {rule.name}: {result.cause}"
                )
            results.append(result)
        return results

    def _aggregate(self, records: List[MachineRecord]) -> RunOutcome:
        provisioned = sum(1 for r in records if r.state == MachineState.PROVISIONED)
        if provisioned == len(records):
            return RunOutcome.SUCCESS
        # Under fail-fast any failure fails the run.
        if self._keep_going and provisioned:
            return RunOutcome.PARTIAL
        return RunOutcome.FAILED
