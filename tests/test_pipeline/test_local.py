"""Tests for the local installer."""

import json
from collections import namedtuple
from unittest.mock import MagicMock, patch

import httpx
import pytest

from devspawn.errors import HostValidationError, InsufficientSpaceError
from devspawn.models.config import DevspawnConfig
from devspawn.models.container import HostEnvironment
from devspawn.models.provision import ProvisionOptions
from devspawn.pipeline.local import LocalInstaller
from devspawn.pipeline.runner import CommandRunner, LocalTarget
from devspawn.utils.commands import CommandResult

DiskUsage = namedtuple("DiskUsage", "total used free")
GB = 1024 ** 3


def ok_transport():
    return httpx.MockTransport(lambda request: httpx.Response(200))


def failing_transport():
    def handler(request):
        raise httpx.ConnectError("network unreachable", request=request)
    return httpx.MockTransport(handler)


@pytest.fixture
def runner():
    runner = MagicMock()
    runner.check.return_value = True
    return runner


def make_installer(runner, tmp_path, transport=None, **options):
    return LocalInstaller(
        runner,
        DevspawnConfig(),
        ProvisionOptions(**options),
        transport=transport or ok_transport(),
        home=tmp_path / "home",
        cwd=tmp_path / "work",
    )


class TestRequirements:
    """Test host requirement checks."""

    @patch("devspawn.pipeline.local.shutil.disk_usage", return_value=DiskUsage(100 * GB, 50 * GB, 50 * GB))
    @patch("devspawn.pipeline.local.platform.machine", return_value="x86_64")
    def test_pass(self, mock_machine, mock_disk, runner, tmp_path):
        make_installer(runner, tmp_path).check_requirements()

    @patch("devspawn.pipeline.local.platform.machine", return_value="aarch64")
    def test_architecture(self, mock_machine, runner, tmp_path):
        with pytest.raises(HostValidationError, match="aarch64"):
            make_installer(runner, tmp_path).check_requirements()

    @patch("devspawn.pipeline.local.shutil.disk_usage", return_value=DiskUsage(100 * GB, 99 * GB, 1 * GB))
    @patch("devspawn.pipeline.local.platform.machine", return_value="AMD64")
    def test_disk_space(self, mock_machine, mock_disk, runner, tmp_path):
        with pytest.raises(InsufficientSpaceError) as exc_info:
            make_installer(runner, tmp_path).check_requirements()
        assert (exc_info.value.have, exc_info.value.need) == (1, 2)

    @patch("devspawn.pipeline.local.shutil.disk_usage", return_value=DiskUsage(100 * GB, 50 * GB, 50 * GB))
    @patch("devspawn.pipeline.local.platform.machine", return_value="x86_64")
    def test_no_connectivity(self, mock_machine, mock_disk, runner, tmp_path):
        with pytest.raises(HostValidationError, match="No internet connection"):
            make_installer(runner, tmp_path, transport=failing_transport()).check_requirements()


class TestInstallSteps:
    """Test installation steps."""

    def test_new_project(self, runner, tmp_path):
        path = make_installer(runner, tmp_path, project_mode="new", project_name="demo").setup_project()
        assert path == tmp_path / "work" / "demo"
        assert path.is_dir()

    def test_clone_project(self, runner, tmp_path):
        installer = make_installer(runner, tmp_path, project_mode="clone", repo_url="https://github.com/acme/app.git")
        assert installer.setup_project() == tmp_path / "work" / "app"
        command = runner.run.call_args[0][0]
        assert command.startswith("git clone https://github.com/acme/app.git ")

    def test_existing_tools_are_reused(self, runner, tmp_path):
        installer = make_installer(runner, tmp_path)
        installer.install_node()
        installer.install_claude()
        runner.run.assert_not_called()

    def test_missing_claude_is_installed(self, runner, tmp_path):
        runner.check.return_value = False
        make_installer(runner, tmp_path).install_claude()
        runner.run.assert_called_once_with(
            "npm install -g @anthropic-ai/claude-code@latest", "Installing Claude Code CLI"
        )

    def test_no_mcp_servers(self, runner, tmp_path):
        assert make_installer(runner, tmp_path).configure_mcp() is None
        runner.write_file.assert_not_called()


@patch("devspawn.pipeline.local.shutil.disk_usage", return_value=DiskUsage(100 * GB, 50 * GB, 50 * GB))
@patch("devspawn.pipeline.local.platform.machine", return_value="x86_64")
def test_local_run_writes_files(mock_machine, mock_disk, tmp_path):
    """Test a full local run against a scripted shell."""
    target = LocalTarget(timeout=30)
    target.execute = MagicMock(return_value=CommandResult(0))
    runner = CommandRunner(target, DevspawnConfig().policy)
    (tmp_path / "work").mkdir()

    result = make_installer(runner, tmp_path, mcp_servers=["filesystem"]).run()

    assert result.environment == HostEnvironment.LOCAL
    assert result.project_path == str(tmp_path / "work")
    mcp_file = tmp_path / "home" / ".config" / "claude-code" / "mcp-config.json"
    assert result.mcp_config_path == str(mcp_file)
    assert list(json.loads(mcp_file.read_text())["mcpServers"]) == ["filesystem"]
    assert (tmp_path / "home" / ".config" / "claude-code" / "uninstall.sh").stat().st_mode & 0o100
    assert result.validation_issues == []
