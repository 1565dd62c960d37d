"""Shared test fixtures for ciliumlab."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

from ciliumlab.config import LabConfig
from ciliumlab.errors import ResourceConflictError
from ciliumlab.models import CloudResource, FirewallRuleSpec, ProvisionRequest, ResourceKind
from ciliumlab.providers.base import CloudBackend


class FakeCloud(CloudBackend):
    """In-memory control plane that records every call."""

    def __init__(self, zone: str = "asia-east1-a") -> None:
        self.zone = zone
        self.firewalls: Dict[str, FirewallRuleSpec] = {}
        self.instances: Dict[str, CloudResource] = {}
        self.calls: List[tuple] = []
        self.fail_create: Set[str] = set()
        self.fail_delete: Set[str] = set()
        self.access_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None

    def check_access(self) -> None:
        self.calls.append(("check_access",))
        if self.access_error is not None:
            raise self.access_error

    def firewall_exists(self, name: str) -> bool:
        self.calls.append(("firewall_exists", name))
        return name in self.firewalls

    def create_firewall(self, rule: FirewallRuleSpec, network: str = "default") -> None:
        self.calls.append(("create_firewall", rule.name))
        if rule.name in self.fail_create:
            raise RuntimeError(f"quota exceeded for {rule.name}")
        if rule.name in self.firewalls:
            raise ResourceConflictError(rule.name)
        self.firewalls[rule.name] = rule

    def delete_firewall(self, name: str) -> None:
        self.calls.append(("delete_firewall", name))
        if name in self.fail_delete:
            raise RuntimeError(f"cannot delete {name}")
        self.firewalls.pop(name)

    def list_firewalls(self) -> List[CloudResource]:
        if self.list_error is not None:
            raise self.list_error
        return [
            CloudResource(name=r.name, kind=ResourceKind.NETWORK_RULE, tags=r.target_tags)
            for r in self.firewalls.values()
        ]

    def instance_exists(self, name: str) -> bool:
        self.calls.append(("instance_exists", name))
        return name in self.instances

    def create_instance(self, name: str, request: ProvisionRequest) -> None:
        self.calls.append(("create_instance", name))
        if name in self.fail_create:
            raise RuntimeError(f"zone exhausted creating {name}")
        if name in self.instances:
            raise ResourceConflictError(name)
        self.add_instance(name, tuple(request.tags))

    def delete_instance(self, name: str) -> None:
        self.calls.append(("delete_instance", name))
        if name in self.fail_delete:
            raise RuntimeError(f"cannot delete {name}")
        self.instances.pop(name)

    def list_instances(self) -> List[CloudResource]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.instances.values())

    def external_ip(self, name: str) -> str:
        return "203.0.113.10"

    def add_instance(self, name: str, tags=(), zone: Optional[str] = None) -> None:
        self.instances[name] = CloudResource(
            name=name, kind=ResourceKind.COMPUTE_INSTANCE, tags=tuple(tags), zone=zone or self.zone,
        )

    def mutating_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0].startswith(("create_", "delete_"))]


class FakeChannel:
    """SSH/SCP channel stand-in with scripted exit codes."""

    def __init__(self, probe_results=None, copy_rc: int = 0, run_rcs=None) -> None:
        self.probe_results = list(probe_results or [])
        self.copy_rc = copy_rc
        self.run_rcs = list(run_rcs or [0])
        self.copied: List[tuple] = []
        self.commands: List[tuple] = []

    def probe(self, machine: str) -> bool:
        if self.probe_results:
            return self.probe_results.pop(0)
        return True

    def copy(self, local: Path, machine: str, remote: str = "~/") -> subprocess.CompletedProcess:
        self.copied.append((machine, local.name, local.read_text(encoding="utf-8")))
        return subprocess.CompletedProcess([], self.copy_rc, stdout="", stderr="lost connection" if self.copy_rc else "")

    def run(self, machine: str, command: str) -> subprocess.CompletedProcess:
        self.commands.append((machine, command))
        rc = self.run_rcs.pop(0) if len(self.run_rcs) > 1 else self.run_rcs[0]
        return subprocess.CompletedProcess([], rc)


@pytest.fixture
def fake_cloud() -> FakeCloud:
    """Provide an empty in-memory cloud."""
    return FakeCloud()


@pytest.fixture
def lab_config() -> LabConfig:
    """Default configuration with a fixed project."""
    return LabConfig(project="test-project")


@pytest.fixture
def make_request(lab_config: LabConfig):
    """Build a ProvisionRequest for N machines."""

    def _make(count: int = 1) -> ProvisionRequest:
        return lab_config.to_request(count)

    return _make


@pytest.fixture
def tmp_lab_home(tmp_path: Path) -> Path:
    """Provide a temporary lab home directory."""
    home = tmp_path / ".ciliumlab"
    home.mkdir()
    return home
