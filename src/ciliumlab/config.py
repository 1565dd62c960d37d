"""
Lab configuration — defaults, config.yaml overrides, project discovery.

The config file lives at ``<home>/config.yaml`` (home defaults to
~/.ciliumlab, overridable with CILIUMLAB_HOME). Every key is optional:

    region: asia-east1
    zone: asia-east1-a
    machine_type: e2-standard-4
    prefix: cilium-lab-kp
    lab_tag: cilium-lab
    poll:
      max_attempts: 40
      interval: 10
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from . import LAB_HOME
from .errors import PreconditionError, RequestValidationError
from .models import (
    ClusterSpec,
    FirewallRuleSpec,
    ProvisionRequest,
    check_gce_name,
    validate_machine_count,
)

logger = logging.getLogger("ciliumlab.config")

CONFIG_FILENAME = "config.yaml"
PROJECT_ENV_VARS = ("GOOGLE_CLOUD_PROJECT", "CLOUDSDK_CORE_PROJECT")


class PollConfig(BaseModel):
    """SSH readiness polling budget."""

    max_attempts: int = Field(default=40, ge=1)
    interval: float = Field(default=10.0, ge=0)
    jitter: float = Field(default=0.0, ge=0)


class LabConfig(BaseModel):
    """Persistent settings for lab runs."""

    project: Optional[str] = None
    region: str = "asia-east1"
    zone: str = "asia-east1-a"
    machine_type: str = "e2-standard-4"
    prefix: str = "cilium-lab-kp"
    lab_tag: str = "cilium-lab"
    extra_tags: Tuple[str, ...] = ("http-server", "https-server")
    image_project: str = "ubuntu-os-cloud"
    image_family: str = "ubuntu-2204-lts"
    disk_size_gb: int = 50
    disk_type: str = "pd-ssd"
    network: str = "default"
    ssh_rule_name: str = "allow-ssh-for-cilium-lab"
    ports_rule_name: str = "allow-cilium-lab-access-ports"
    cluster: ClusterSpec = Field(default_factory=ClusterSpec)
    poll: PollConfig = Field(default_factory=PollConfig)
    remote_retries: int = Field(default=0, ge=0, le=1)

    @field_validator("prefix", "lab_tag")
    @classmethod
    def must_be_gce_name(cls, v: str) -> str:
        return check_gce_name(v)

    def firewall_rules(self) -> Tuple[FirewallRuleSpec, ...]:
        """The two shared ingress rules: SSH, and the lab service ports."""
        return (
            FirewallRuleSpec(
                name=self.ssh_rule_name,
                ports=(22,),
                target_tags=(self.lab_tag,),
                description="Allow SSH access for Cilium Lab VMs",
            ),
            FirewallRuleSpec(
                name=self.ports_rule_name,
                ports=tuple(self.cluster.service_ports),
                target_tags=(self.lab_tag,),
                description="Access ports for Cilium Lab services",
            ),
        )

    def to_request(
        self,
        count: object = 1,
        project: Optional[str] = None,
        zone: Optional[str] = None,
    ) -> ProvisionRequest:
        """Build the immutable request for one run.

        Args:
            count: Machine count as given by the user.
            project: Explicit project; beats the configured one.
            zone: Explicit zone; beats the configured one.

        Returns:
            A validated ProvisionRequest.

        Raises:
            RequestValidationError: If the count is not within bounds, or the
                settings do not form a valid request.
        """
        machine_count = validate_machine_count(count)
        region = self.region
        if zone:
            # asia-east1-a -> asia-east1
            region = zone.rsplit("-", 1)[0]
        try:
            return ProvisionRequest(
                machine_count=machine_count,
                prefix=self.prefix,
                project=project or self.project or "",
                region=region,
                zone=zone or self.zone,
                machine_type=self.machine_type,
                lab_tag=self.lab_tag,
                extra_tags=self.extra_tags,
                image_project=self.image_project,
                image_family=self.image_family,
                disk_size_gb=self.disk_size_gb,
                disk_type=self.disk_type,
                network=self.network,
                cluster=self.cluster,
                firewall_rules=self.firewall_rules(),
            )
        except ValidationError as exc:
            raise RequestValidationError(f"Invalid lab settings: {exc}") from exc


def lab_home(home: Optional[Path] = None) -> Path:
    """Resolve the lab home directory."""
    return (home or Path(LAB_HOME)).expanduser()


def load_config(path: Optional[Path] = None, home: Optional[Path] = None) -> LabConfig:
    """Load configuration from disk.

    Args:
        path: Explicit config file. Defaults to ``<home>/config.yaml``.
        home: Lab home directory.

    Returns:
        LabConfig from the file, or defaults when the file is absent or bad.
    """
    config_file = path or lab_home(home) / CONFIG_FILENAME
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            return LabConfig(**data)
        except (yaml.YAMLError, ValueError, TypeError) as exc:
            logger.warning("Failed to load %s: %s; using defaults", config_file, exc)
    return LabConfig()


def resolve_project(
    explicit: Optional[str],
    config: LabConfig,
    detect: Optional[Callable[[], Optional[str]]] = None,
) -> str:
    """Find the project to deploy into.

    Order: explicit option, config file, environment, then ``detect``
    (normally ``gcloud config get-value project``).

    Raises:
        PreconditionError: If no source yields a project.
    """
    if explicit:
        return explicit
    if config.project:
        return config.project
    for var in PROJECT_ENV_VARS:
        value = os.environ.get(var, "").strip()
        if value:
            return value
    if detect is not None:
        detected = detect()
        if detected:
            return detected
    raise PreconditionError(
        "Cannot determine the GCP project. Run: gcloud config set project YOUR_PROJECT_ID"
    )
