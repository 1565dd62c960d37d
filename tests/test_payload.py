"""Tests for install script rendering."""

from __future__ import annotations

import pytest

from ciliumlab.models import ClusterSpec, ProvisionRequest
from ciliumlab.payload import PayloadGenerator, ScriptTemplate, render_template


class TestScriptTemplate:
    def test_dollar_signs_untouched(self):
        text = ScriptTemplate("echo $HOME ${VAR} @@{name}").substitute(name="x")
        assert text == "echo $HOME ${VAR} x"

    def test_missing_placeholder_raises(self):
        with pytest.raises(KeyError):
            render_template("kind-worker.yaml.tmpl", {})


class TestPayloadGenerator:
    """Tests for PayloadGenerator.render()."""

    def test_deterministic(self):
        req = ProvisionRequest(machine_count=2)
        a = PayloadGenerator().render(req)
        b = PayloadGenerator().render(req)
        assert a.text == b.text
        assert a.digest == b.digest

    def test_no_placeholders_left(self):
        artifact = PayloadGenerator().render(ProvisionRequest())
        assert "@@" not in artifact.text
        assert artifact.text.endswith("\n")
        assert artifact.filename == "install_on_vm_kp.sh"

    def test_cluster_values_rendered(self):
        artifact = PayloadGenerator().render(ProvisionRequest())
        text = artifact.text
        assert "kind.sigs.k8s.io/dl/v0.22.0/kind-linux-amd64" in text
        assert "--version=1.17.6" in text
        assert "cluster.name=cilium-with-kubeproxy" in text
        assert 'ipv4NativeRoutingCIDR="10.0.0.0/8"' in text
        assert 'kubeProxyMode: "iptables"' in text

    def test_worker_layer_repeated(self):
        req = ProvisionRequest(cluster=ClusterSpec(worker_count=2))
        text = PayloadGenerator().render(req).text
        assert text.count("- role: worker") == 2
        assert text.count("- role: control-plane") == 1
        assert "maxPods: 200" in text
        assert "maxPods: 150" in text

    def test_inner_layers_inside_quoted_heredocs(self):
        text = PayloadGenerator().render(ProvisionRequest()).text
        kind_start = text.index("cat << 'EOK' > kind-config.yaml")
        kind_end = text.index("\nEOK\n")
        assert "kind: Cluster" in text[kind_start:kind_end]
        pf_start = text.index("cat << 'EOPF' > start-port-forward.sh")
        pf_end = text.index("\nEOPF\n")
        port_forward = text[pf_start:pf_end]
        assert "svc/hubble-ui 30012:80" in port_forward
        assert "$VM_IP:30093" in port_forward

    def test_payload_ignores_machine_count(self):
        one = PayloadGenerator().render(ProvisionRequest(machine_count=1))
        many = PayloadGenerator().render(ProvisionRequest(machine_count=7))
        assert one.digest == many.digest
