"""
Cloud backend interface.

The orchestration core only ever talks to this interface. GCPCompute is
the production implementation; tests supply in-memory fakes.
"""

from __future__ import annotations

from typing import List

from ..models import CloudResource, FirewallRuleSpec, ProvisionRequest


class CloudBackend:
    """Abstract base for the cloud control plane."""

    def check_access(self) -> None:
        """Raise PreconditionError if the control plane is unreachable."""
        raise NotImplementedError

    def firewall_exists(self, name: str) -> bool:
        """Check whether a network rule exists."""
        raise NotImplementedError

    def create_firewall(self, rule: FirewallRuleSpec, network: str = "default") -> None:
        """Create a network rule. Raises ResourceConflictError if it exists."""
        raise NotImplementedError

    def delete_firewall(self, name: str) -> None:
        """Delete a network rule."""
        raise NotImplementedError

    def list_firewalls(self) -> List[CloudResource]:
        """List network rules."""
        raise NotImplementedError

    def instance_exists(self, name: str) -> bool:
        """Check whether a compute instance exists."""
        raise NotImplementedError

    def create_instance(self, name: str, request: ProvisionRequest) -> None:
        """Create a compute instance. Raises ResourceConflictError if it exists."""
        raise NotImplementedError

    def delete_instance(self, name: str) -> None:
        """Delete a compute instance."""
        raise NotImplementedError

    def list_instances(self) -> List[CloudResource]:
        """List compute instances."""
        raise NotImplementedError

    def external_ip(self, name: str) -> str:
        """External address of an instance, or ''."""
        raise NotImplementedError
