"""Tests for payload delivery and execution."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock

from ciliumlab.models import PayloadArtifact
from ciliumlab.remote import RemoteExecutor

from conftest import FakeChannel


ARTIFACT = PayloadArtifact(text="#!/bin/bash\necho hi\n")


class TestRemoteExecutor:
    """Tests for RemoteExecutor.deliver_and_run()."""

    def test_transfer_then_run(self, tmp_path: Path):
        channel = FakeChannel()
        result = RemoteExecutor(channel, workdir=tmp_path).deliver_and_run("vm-1", ARTIFACT)
        assert result.ok
        assert result.step == "run"
        assert channel.copied == [("vm-1", "install_on_vm_kp.sh", ARTIFACT.text)]
        assert channel.commands == [("vm-1", "bash install_on_vm_kp.sh")]

    def test_failed_transfer_skips_run(self, tmp_path: Path):
        channel = FakeChannel(copy_rc=1)
        result = RemoteExecutor(channel, workdir=tmp_path).deliver_and_run("vm-1", ARTIFACT)
        assert not result.ok
        assert result.step == "transfer"
        assert "lost connection" in result.captured_status
        assert channel.commands == []

    def test_remote_exit_code_reported(self, tmp_path: Path):
        channel = FakeChannel(run_rcs=[3])
        result = RemoteExecutor(channel, workdir=tmp_path).deliver_and_run("vm-1", ARTIFACT)
        assert result.exit_code == 3
        assert result.step == "run"

    def test_local_copy_removed(self, tmp_path: Path):
        RemoteExecutor(FakeChannel(), workdir=tmp_path).deliver_and_run("vm-1", ARTIFACT)
        assert list(tmp_path.iterdir()) == []

    def test_stalled_transfer_reported(self, tmp_path: Path):
        channel = FakeChannel()
        channel.copy = MagicMock(side_effect=subprocess.TimeoutExpired(["gcloud", "compute", "scp"], 300))
        result = RemoteExecutor(channel, workdir=tmp_path).deliver_and_run("vm-1", ARTIFACT)
        assert not result.ok
        assert result.step == "transfer"
        assert "timed out" in result.captured_status
        assert channel.commands == []
        assert list(tmp_path.iterdir()) == []

    def test_run_that_cannot_start_reported(self, tmp_path: Path):
        channel = FakeChannel()
        channel.run = MagicMock(side_effect=FileNotFoundError("gcloud"))
        result = RemoteExecutor(channel, workdir=tmp_path).deliver_and_run("vm-1", ARTIFACT)
        assert not result.ok
        assert result.step == "run"
