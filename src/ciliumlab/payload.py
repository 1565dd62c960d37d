"""
PayloadGenerator — renders the install script delivered to every VM.

The artifact has three layers, each a template under ``templates/``:

    install.sh.tmpl            outer installer
      kind-config.yaml.tmpl    cluster topology (one control plane, N workers)
      port-forward.sh.tmpl     runtime-access script left on the VM

Each layer is rendered exactly once from its own parameter mapping.
Inner layers are dropped verbatim into quoted heredocs of the outer one;
rendered text is never fed back through a template.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from string import Template
from typing import Dict, Mapping

from .models import ClusterSpec, PayloadArtifact, ProvisionRequest

logger = logging.getLogger("ciliumlab.payload")

TEMPLATE_DIR = Path(__file__).parent / "templates"


class ScriptTemplate(Template):
    """``string.Template`` with an ``@@`` delimiter.

    Shell and YAML text keep every ``$`` untouched; only ``@@{name}``
    placeholders are substituted.
    """

    delimiter = "@@"


@lru_cache(maxsize=None)
def load_template(name: str) -> ScriptTemplate:
    """Load a packaged template by file name."""
    return ScriptTemplate((TEMPLATE_DIR / name).read_text(encoding="utf-8"))


def render_template(name: str, params: Mapping[str, object]) -> str:
    """Render one template layer.

    Args:
        name: Template file name under ``templates/``.
        params: Placeholder values; every placeholder must be supplied.

    Returns:
        Rendered text without trailing newlines.

    Raises:
        KeyError: If a placeholder has no value.
    """
    values = {key: str(value) for key, value in params.items()}
    return load_template(name).substitute(values).rstrip("\n")


def _kind_params(cluster: ClusterSpec) -> Dict[str, object]:
    worker = render_template("kind-worker.yaml.tmpl", {
        "worker_max_pods": cluster.worker_max_pods,
    })
    return {
        "kube_proxy_mode": cluster.kube_proxy_mode,
        "control_plane_max_pods": cluster.control_plane_max_pods,
        "worker_nodes": "\n".join([worker] * cluster.worker_count),
    }


def _port_forward_params(cluster: ClusterSpec) -> Dict[str, object]:
    return {
        "hubble_ui_port": cluster.hubble_ui_port,
        "prometheus_port": cluster.prometheus_port,
        "grafana_port": cluster.grafana_port,
        "alertmanager_port": cluster.alertmanager_port,
    }


class PayloadGenerator:
    """Pure function from a ProvisionRequest to a PayloadArtifact."""

    def __init__(self, filename: str = "install_on_vm_kp.sh") -> None:
        self._filename = filename

    def render(self, request: ProvisionRequest) -> PayloadArtifact:
        """Render the full install script.

        Args:
            request: The run's request; only its ClusterSpec is read.

        Returns:
            PayloadArtifact, byte-identical for identical requests.
        """
        cluster = request.cluster
        kind_config = render_template("kind-config.yaml.tmpl", _kind_params(cluster))
        port_forward = render_template("port-forward.sh.tmpl", _port_forward_params(cluster))

        text = render_template("install.sh.tmpl", {
            "kind_version": cluster.kind_version,
            "cilium_version": cluster.cilium_version,
            "cluster_name": cluster.cluster_name,
            "api_server_port": cluster.api_server_port,
            "native_routing_cidr": cluster.native_routing_cidr,
            "kind_config": kind_config,
            "port_forward_script": port_forward,
        }) + "\n"

        artifact = PayloadArtifact(filename=self._filename, text=text)
        logger.info("Rendered %s (%d bytes, sha256 %s)", artifact.filename, len(text), artifact.digest[:12])
        return artifact
