"""Tests for request, lifecycle and report models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ciliumlab.errors import RequestValidationError
from ciliumlab.models import (
    CloudResource,
    MachineRecord,
    MachineState,
    PayloadArtifact,
    ProvisionRequest,
    ResourceKind,
    RunReport,
    TeardownFilter,
    validate_machine_count,
)


class TestValidateMachineCount:
    """Tests for validate_machine_count()."""

    @pytest.mark.parametrize("raw,expected", [(1, 1), (10, 10), ("3", 3), (" 5 ", 5)])
    def test_accepts_bounds_and_numeric_strings(self, raw, expected):
        assert validate_machine_count(raw) == expected

    @pytest.mark.parametrize("raw", [0, 11, "0", "11", "abc", "", "2.5", "-1", None, True])
    def test_rejects_everything_else(self, raw):
        with pytest.raises(RequestValidationError):
            validate_machine_count(raw)

    def test_error_exit_code(self):
        with pytest.raises(RequestValidationError) as exc_info:
            validate_machine_count("abc")
        assert exc_info.value.exit_code == 2


class TestProvisionRequest:
    """Tests for the immutable run request."""

    def test_machine_names_ascending(self):
        req = ProvisionRequest(machine_count=3)
        assert req.machine_names == ["cilium-lab-kp-1", "cilium-lab-kp-2", "cilium-lab-kp-3"]

    def test_tags_end_with_lab_tag(self):
        req = ProvisionRequest()
        assert req.tags == ["http-server", "https-server", "cilium-lab"]

    def test_source_image_uses_family(self):
        req = ProvisionRequest()
        assert req.source_image == "projects/ubuntu-os-cloud/global/images/family/ubuntu-2204-lts"

    def test_frozen(self):
        req = ProvisionRequest()
        with pytest.raises(ValidationError):
            req.machine_count = 5

    def test_count_bounds_enforced(self):
        with pytest.raises(ValidationError):
            ProvisionRequest(machine_count=11)

    def test_bad_prefix_rejected(self):
        with pytest.raises(ValidationError):
            ProvisionRequest(prefix="Cilium_Lab")


class TestMachineRecord:
    """Tests for the forward-only machine lifecycle."""

    def test_happy_path_history(self):
        record = MachineRecord(name="vm-1")
        for state in (MachineState.CREATED, MachineState.READY, MachineState.PROVISIONED):
            record.advance(state)
        assert record.history == [
            MachineState.PENDING,
            MachineState.CREATED,
            MachineState.READY,
            MachineState.PROVISIONED,
        ]
        assert record.terminal

    def test_skip_rejected(self):
        record = MachineRecord(name="vm-1")
        with pytest.raises(ValueError):
            record.advance(MachineState.READY)

    def test_regression_rejected(self):
        record = MachineRecord(name="vm-1")
        record.advance(MachineState.CREATED)
        with pytest.raises(ValueError):
            record.advance(MachineState.PENDING)

    def test_fail_from_any_live_state(self):
        record = MachineRecord(name="vm-1")
        record.advance(MachineState.CREATED)
        record.fail("ssh timeout", 5)
        assert record.state == MachineState.FAILED
        assert record.failure_code == 5
        assert record.history[-1] == MachineState.FAILED

    def test_terminal_is_final(self):
        record = MachineRecord(name="vm-1")
        record.fail("boom", 4)
        with pytest.raises(ValueError):
            record.advance(MachineState.CREATED)


class TestRunReport:
    """Tests for report aggregation helpers."""

    def test_exit_code_of_first_failure(self):
        ok = MachineRecord(name="a")
        for state in (MachineState.CREATED, MachineState.READY, MachineState.PROVISIONED):
            ok.advance(state)
        bad = MachineRecord(name="b")
        bad.fail("no ssh", 5)
        report = RunReport(per_machine=[ok, bad])
        assert [m.name for m in report.provisioned] == ["a"]
        assert [m.name for m in report.failed] == ["b"]
        assert report.exit_code == 5

    def test_exit_code_zero_without_failures(self):
        assert RunReport(per_machine=[MachineRecord(name="a")]).exit_code == 0


class TestPayloadArtifact:
    def test_digest_tracks_text(self):
        a = PayloadArtifact(text="echo hi\n")
        b = PayloadArtifact(text="echo hi\n")
        c = PayloadArtifact(text="echo bye\n")
        assert a.digest == b.digest
        assert a.digest != c.digest


class TestTeardownFilter:
    """Tests for tag OR prefix selection."""

    def _vm(self, name, tags=(), zone="asia-east1-a"):
        return CloudResource(name=name, kind=ResourceKind.COMPUTE_INSTANCE, tags=tags, zone=zone)

    def test_tag_or_prefix(self):
        f = TeardownFilter(tag="cilium-lab", prefix="cilium-lab-kp")
        assert f.matches(self._vm("other", tags=("cilium-lab",)))
        assert f.matches(self._vm("cilium-lab-kp-7"))
        assert not f.matches(self._vm("web-1", tags=("http-server",)))

    def test_zone_restricts(self):
        f = TeardownFilter(prefix="cilium-lab-kp", zone="asia-east1-a")
        assert not f.matches(self._vm("cilium-lab-kp-1", zone="us-central1-a"))
