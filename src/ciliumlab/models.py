"""
Data model for lab runs.

A ProvisionRequest is built once from configuration and passed down
explicitly: Orchestrator -> VMProvisioner -> PayloadGenerator. Nothing
reads settings from the environment after that point.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import RequestValidationError

MIN_MACHINES = 1
MAX_MACHINES = 10

_NAME_RE = re.compile(r"^[a-z]([-a-z0-9]*[a-z0-9])?$")


def check_gce_name(v: str) -> str:
    """Compute Engine names: lowercase, digits and hyphens."""
    if not _NAME_RE.match(v):
        raise ValueError(f"must be lowercase alphanumeric with hyphens: got '{v}'")
    return v


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class FirewallRuleSpec(BaseModel):
    """An ingress rule shared by every machine carrying the lab tag."""

    model_config = ConfigDict(frozen=True)

    name: str
    ports: Tuple[int, ...]
    source_ranges: Tuple[str, ...] = ("0.0.0.0/0",)
    target_tags: Tuple[str, ...] = ()
    description: str = ""


class ClusterSpec(BaseModel):
    """What the payload builds inside each VM."""

    model_config = ConfigDict(frozen=True)

    cluster_name: str = "cilium-with-kubeproxy"
    kind_version: str = "v0.22.0"
    cilium_version: str = "1.17.6"
    worker_count: int = Field(default=3, ge=0, le=10)
    control_plane_max_pods: int = 200
    worker_max_pods: int = 150
    kube_proxy_mode: str = "iptables"
    native_routing_cidr: str = "10.0.0.0/8"
    api_server_port: int = 6443
    hubble_ui_port: int = 30012
    prometheus_port: int = 30090
    grafana_port: int = 30030
    alertmanager_port: int = 30093

    @property
    def service_ports(self) -> List[int]:
        """Ports the lab exposes to the outside world."""
        return [
            self.hubble_ui_port,
            self.prometheus_port,
            self.grafana_port,
            self.alertmanager_port,
            self.api_server_port,
        ]


class ProvisionRequest(BaseModel):
    """Immutable description of one lab run."""

    model_config = ConfigDict(frozen=True)

    machine_count: int = Field(default=1, ge=MIN_MACHINES, le=MAX_MACHINES)
    prefix: str = "cilium-lab-kp"
    project: str = ""
    region: str = "asia-east1"
    zone: str = "asia-east1-a"
    machine_type: str = "e2-standard-4"
    lab_tag: str = "cilium-lab"
    extra_tags: Tuple[str, ...] = ("http-server", "https-server")
    image_project: str = "ubuntu-os-cloud"
    image_family: str = "ubuntu-2204-lts"
    disk_size_gb: int = Field(default=50, ge=10)
    disk_type: str = "pd-ssd"
    network: str = "default"
    cluster: ClusterSpec = Field(default_factory=ClusterSpec)
    firewall_rules: Tuple[FirewallRuleSpec, ...] = ()

    @field_validator("prefix", "lab_tag")
    @classmethod
    def must_be_gce_name(cls, v: str) -> str:
        return check_gce_name(v)

    @property
    def machine_names(self) -> List[str]:
        """Deterministic machine names, ascending by index."""
        return [f"{self.prefix}-{i}" for i in range(1, self.machine_count + 1)]

    @property
    def tags(self) -> List[str]:
        """Network tags applied to every machine."""
        return [*self.extra_tags, self.lab_tag]

    @property
    def source_image(self) -> str:
        """Image family URI for the boot disk."""
        return f"projects/{self.image_project}/global/images/family/{self.image_family}"


def validate_machine_count(raw: object) -> int:
    """Parse a machine count from user input.

    Args:
        raw: Anything the caller received, usually a string or int.

    Returns:
        The count as an int within [MIN_MACHINES, MAX_MACHINES].

    Raises:
        RequestValidationError: If the value is not an integer or out of range.
    """
    if isinstance(raw, bool):
        raise RequestValidationError(f"machine count must be a number, got {raw!r}")
    if isinstance(raw, int):
        count = raw
    else:
        text = str(raw).strip()
        if not text.isdigit():
            raise RequestValidationError(
                f"machine count must be a number between {MIN_MACHINES} and "
                f"{MAX_MACHINES}, got {raw!r}"
            )
        count = int(text)
    if not MIN_MACHINES <= count <= MAX_MACHINES:
        raise RequestValidationError(
            f"machine count must be between {MIN_MACHINES} and {MAX_MACHINES}, got {count}"
        )
    return count


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

class ResourceKind(str, Enum):
    """Kinds of cloud object the lab manages."""

    NETWORK_RULE = "network-rule"
    COMPUTE_INSTANCE = "compute-instance"


@dataclass
class ManagedResource:
    """A named cloud object with an existence check and a creation action."""

    kind: ResourceKind
    name: str
    exists: Callable[[], bool]
    create: Callable[[], None]


class EnsureOutcome(str, Enum):
    """Result of one ensure call."""

    ALREADY_EXISTED = "already_existed"
    CREATED = "created"
    FAILED = "failed"


class EnsureResult(BaseModel):
    """Outcome of ensuring a single resource."""

    name: str
    kind: ResourceKind
    outcome: EnsureOutcome
    cause: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome != EnsureOutcome.FAILED


class CloudResource(BaseModel):
    """A live resource as reported by a listing call."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: ResourceKind
    tags: Tuple[str, ...] = ()
    zone: Optional[str] = None


# ---------------------------------------------------------------------------
# Machine lifecycle
# ---------------------------------------------------------------------------

class MachineState(str, Enum):
    """Per-machine run state."""

    PENDING = "pending"
    CREATED = "created"
    READY = "ready"
    PROVISIONED = "provisioned"
    FAILED = "failed"


_ORDER = {
    MachineState.PENDING: 0,
    MachineState.CREATED: 1,
    MachineState.READY: 2,
    MachineState.PROVISIONED: 3,
}

TERMINAL_STATES = frozenset({MachineState.PROVISIONED, MachineState.FAILED})


class MachineRecord(BaseModel):
    """Run state of one machine. Only ever moves forward."""

    name: str
    state: MachineState = MachineState.PENDING
    history: List[MachineState] = Field(
        default_factory=lambda: [MachineState.PENDING]
    )
    external_ip: Optional[str] = None
    error: Optional[str] = None
    failure_code: Optional[int] = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, state: MachineState) -> None:
        """Move to the next state.

        Args:
            state: Target state.

        Raises:
            ValueError: On any regression, skip, or move out of a terminal state.
        """
        if self.terminal:
            raise ValueError(
                f"{self.name} is already {self.state.value}; cannot move to {state.value}"
            )
        if state != MachineState.FAILED and _ORDER[state] != _ORDER[self.state] + 1:
            raise ValueError(
                f"{self.name}: illegal transition {self.state.value} -> {state.value}"
            )
        self.state = state
        self.history.append(state)

    def fail(self, error: str, code: int) -> None:
        """Mark the machine failed with a reason and exit code."""
        self.advance(MachineState.FAILED)
        self.error = error
        self.failure_code = code


@dataclass(frozen=True)
class PollAttempt:
    """One readiness probe and whether it succeeded."""

    index: int
    ok: bool


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------

class PayloadArtifact(BaseModel):
    """A fully rendered install script, identical for every machine in a run."""

    model_config = ConfigDict(frozen=True)

    filename: str = "install_on_vm_kp.sh"
    text: str

    @property
    def digest(self) -> str:
        """SHA-256 of the script body."""
        return hashlib.sha256(self.text.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

class RunOutcome(str, Enum):
    """Aggregate result of a run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunReport(BaseModel):
    """Everything a finished run has to say."""

    per_machine: List[MachineRecord] = Field(default_factory=list)
    shared: List[EnsureResult] = Field(default_factory=list)
    overall: RunOutcome = RunOutcome.SUCCESS

    @property
    def provisioned(self) -> List[MachineRecord]:
        return [m for m in self.per_machine if m.state == MachineState.PROVISIONED]

    @property
    def failed(self) -> List[MachineRecord]:
        return [m for m in self.per_machine if m.state == MachineState.FAILED]

    @property
    def exit_code(self) -> int:
        """Failure code of the first failed machine, or 0."""
        for record in self.failed:
            return record.failure_code or 1
        return 0


class TeardownFilter(BaseModel):
    """Selects resources for deletion: tag match OR name-prefix match."""

    model_config = ConfigDict(frozen=True)

    tag: Optional[str] = None
    prefix: Optional[str] = None
    zone: Optional[str] = None

    def matches(self, resource: CloudResource) -> bool:
        """Check whether a live resource should be deleted.

        Args:
            resource: Resource from a listing call.

        Returns:
            True on a tag or prefix hit, within the zone when one is set.
        """
        if self.zone and resource.zone and resource.zone != self.zone:
            return False
        by_tag = bool(self.tag) and self.tag in resource.tags
        by_prefix = bool(self.prefix) and resource.name.startswith(self.prefix)
        return by_tag or by_prefix


class TeardownReport(BaseModel):
    """What a sweep matched, deleted, and failed to delete."""

    matched: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
