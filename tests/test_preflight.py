"""Tests for local tool checks."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from ciliumlab.errors import PreconditionError
from ciliumlab.preflight import (
    GCLOUD_INSTALL_URL,
    ToolCheck,
    ToolStatus,
    check_gcloud,
    check_python,
    require_tools,
)


class TestCheckPython:
    """Tests for check_python()."""

    def test_returns_toolcheck(self) -> None:
        result = check_python()
        assert isinstance(result, ToolCheck)
        assert result.name == "Python"
        assert result.installed is True
        assert "3." in result.version


class TestCheckGcloud:
    """Tests for check_gcloud()."""

    @patch("ciliumlab.preflight.shutil.which", return_value=None)
    def test_missing(self, mock_which: MagicMock) -> None:
        result = check_gcloud()
        assert result.status == ToolStatus.MISSING
        assert result.download_url == GCLOUD_INSTALL_URL

    @patch("ciliumlab.preflight.subprocess.run")
    @patch("ciliumlab.preflight.shutil.which", return_value="/usr/bin/gcloud")
    def test_installed_with_version(self, mock_which: MagicMock, mock_run: MagicMock) -> None:
        mock_run.return_value = MagicMock(returncode=0, stdout="Google Cloud SDK 480.0.0\nbq 2.1\n")
        result = check_gcloud()
        assert result.installed
        assert result.version == "Google Cloud SDK 480.0.0"


class TestRequireTools:
    @patch("ciliumlab.preflight.shutil.which", return_value=None)
    def test_raises_with_hint(self, mock_which: MagicMock) -> None:
        with pytest.raises(PreconditionError) as exc_info:
            require_tools()
        assert "gcloud" in str(exc_info.value)
        assert exc_info.value.exit_code == 3
