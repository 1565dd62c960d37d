"""
GCP Compute adapter — firewall rules and instances via google-cloud-compute.

Expects Application Default Credentials:
    gcloud auth application-default login
or GOOGLE_APPLICATION_CREDENTIALS pointing at a service account key.

Every method maps to a single API call (plus waiting on its operation),
so callers can build idempotent check-then-create steps on top.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import compute_v1

from ..errors import PreconditionError, ResourceConflictError
from ..models import CloudResource, FirewallRuleSpec, ProvisionRequest, ResourceKind
from .base import CloudBackend

logger = logging.getLogger("ciliumlab.providers.gcp")

OPERATION_TIMEOUT = 300
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class GCPCompute(CloudBackend):
    """Thin wrapper over the Compute Engine API for one project and zone.

    Args:
        project: GCP project ID.
        zone: Compute zone (e.g. 'asia-east1-a').
        instances_client: Injected InstancesClient (tests).
        firewalls_client: Injected FirewallsClient (tests).
        regions_client: Injected RegionsClient (tests).
    """

    def __init__(
        self,
        project: str,
        zone: str,
        instances_client: Optional[Any] = None,
        firewalls_client: Optional[Any] = None,
        regions_client: Optional[Any] = None,
    ) -> None:
        self._project = project
        self._zone = zone
        self._instances = instances_client
        self._firewalls = firewalls_client
        self._regions = regions_client

    @property
    def project(self) -> str:
        return self._project

    @property
    def zone(self) -> str:
        return self._zone

    # ------------------------------------------------------------------
    # Clients (created lazily so construction needs no credentials)
    # ------------------------------------------------------------------

    @property
    def instances(self) -> Any:
        if self._instances is None:
            self._instances = compute_v1.InstancesClient()
        return self._instances

    @property
    def firewalls(self) -> Any:
        if self._firewalls is None:
            self._firewalls = compute_v1.FirewallsClient()
        return self._firewalls

    @property
    def regions(self) -> Any:
        if self._regions is None:
            self._regions = compute_v1.RegionsClient()
        return self._regions

    @staticmethod
    def _wait(operation: Any, what: str) -> None:
        """Block until a long-running operation finishes.

        Raises:
            ResourceConflictError: If the operation reports 'already exists'.
        """
        try:
            operation.result(timeout=OPERATION_TIMEOUT)
        except google_exceptions.Conflict as exc:
            raise ResourceConflictError(f"{what}: {exc}") from exc

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def check_access(self) -> None:
        """Verify the Compute Engine API answers for this project.

        Raises:
            PreconditionError: If credentials are missing, the API is
                disabled, or permissions are insufficient.
        """
        request = compute_v1.ListRegionsRequest(project=self._project, max_results=1)
        try:
            next(iter(self.regions.list(request=request)), None)
        except (google_exceptions.GoogleAPIError, auth_exceptions.DefaultCredentialsError) as exc:
            raise PreconditionError(
                f"Cannot access the Compute Engine API for project '{self._project}': {exc}. "
                "Make sure the API is enabled and you have sufficient permissions."
            ) from exc

    # ------------------------------------------------------------------
    # Firewall rules
    # ------------------------------------------------------------------

    def firewall_exists(self, name: str) -> bool:
        """Check whether a firewall rule exists."""
        try:
            self.firewalls.get(project=self._project, firewall=name)
        except google_exceptions.NotFound:
            return False
        return True

    def create_firewall(self, rule: FirewallRuleSpec, network: str = "default") -> None:
        """Create an ingress firewall rule and wait for it.

        Raises:
            ResourceConflictError: If the rule already exists.
        """
        firewall = compute_v1.Firewall(
            name=rule.name,
            direction="INGRESS",
            network=f"global/networks/{network}",
            allowed=[compute_v1.Allowed(
                I_p_protocol="tcp", ports=[str(p) for p in rule.ports],
            )],
            source_ranges=list(rule.source_ranges),
            target_tags=list(rule.target_tags),
            description=rule.description,
        )
        logger.info("Creating firewall rule %s (tcp:%s)", rule.name, ",".join(map(str, rule.ports)))
        try:
            operation = self.firewalls.insert(project=self._project, firewall_resource=firewall)
        except google_exceptions.Conflict as exc:
            raise ResourceConflictError(f"firewall rule {rule.name}: {exc}") from exc
        self._wait(operation, f"firewall rule {rule.name}")

    def delete_firewall(self, name: str) -> None:
        """Delete a firewall rule and wait for it."""
        operation = self.firewalls.delete(project=self._project, firewall=name)
        self._wait(operation, f"delete firewall rule {name}")
        logger.info("Deleted firewall rule %s", name)

    def list_firewalls(self) -> List[CloudResource]:
        """List firewall rules in the project."""
        return [
            CloudResource(
                name=fw.name,
                kind=ResourceKind.NETWORK_RULE,
                tags=tuple(fw.target_tags),
            )
            for fw in self.firewalls.list(project=self._project)
        ]

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def instance_exists(self, name: str) -> bool:
        """Check whether an instance exists in the zone."""
        try:
            self.instances.get(project=self._project, zone=self._zone, instance=name)
        except google_exceptions.NotFound:
            return False
        return True

    def build_instance(self, name: str, request: ProvisionRequest) -> Any:
        """Build the Instance resource for one lab machine."""
        disk = compute_v1.AttachedDisk(
            auto_delete=True,
            boot=True,
            initialize_params=compute_v1.AttachedDiskInitializeParams(
                source_image=request.source_image,
                disk_size_gb=request.disk_size_gb,
                disk_type=f"zones/{self._zone}/diskTypes/{request.disk_type}",
            ),
        )
        net_iface = compute_v1.NetworkInterface(
            network=f"global/networks/{request.network}",
            access_configs=[compute_v1.AccessConfig(
                name="External NAT",
                type_="ONE_TO_ONE_NAT",
                network_tier="PREMIUM",
            )],
        )
        return compute_v1.Instance(
            name=name,
            machine_type=f"zones/{self._zone}/machineTypes/{request.machine_type}",
            disks=[disk],
            network_interfaces=[net_iface],
            tags=compute_v1.Tags(items=request.tags),
            service_accounts=[compute_v1.ServiceAccount(
                email="default", scopes=[CLOUD_PLATFORM_SCOPE],
            )],
            labels={"managed-by": "ciliumlab", "lab": request.lab_tag},
        )

    def create_instance(self, name: str, request: ProvisionRequest) -> None:
        """Create a lab VM and wait for the insert to finish.

        Raises:
            ResourceConflictError: If an instance with this name already exists.
        """
        instance = self.build_instance(name, request)
        logger.info(
            "Creating GCP instance %s (type=%s zone=%s project=%s)",
            name, request.machine_type, self._zone, self._project,
        )
        try:
            operation = self.instances.insert(
                project=self._project, zone=self._zone, instance_resource=instance,
            )
        except google_exceptions.Conflict as exc:
            raise ResourceConflictError(f"instance {name}: {exc}") from exc
        self._wait(operation, f"instance {name}")

    def delete_instance(self, name: str) -> None:
        """Delete an instance and wait for it."""
        operation = self.instances.delete(project=self._project, zone=self._zone, instance=name)
        self._wait(operation, f"delete instance {name}")
        logger.info("Deleted GCP instance %s", name)

    def list_instances(self) -> List[CloudResource]:
        """List instances in the zone."""
        return [
            CloudResource(
                name=inst.name,
                kind=ResourceKind.COMPUTE_INSTANCE,
                tags=tuple(inst.tags.items),
                zone=self._zone,
            )
            for inst in self.instances.list(project=self._project, zone=self._zone)
        ]

    def external_ip(self, name: str) -> str:
        """Return the instance's external NAT address, or '' if it has none."""
        inst = self.instances.get(project=self._project, zone=self._zone, instance=name)
        for iface in inst.network_interfaces:
            for ac in iface.access_configs:
                if ac.nat_i_p:
                    return ac.nat_i_p
        return ""
