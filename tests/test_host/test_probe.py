"""Tests for environment detection."""

from unittest.mock import patch

import pytest

from devspawn.errors import WrongHostError
from devspawn.host.probe import EnvironmentProber, choose_environment
from devspawn.models.container import HostEnvironment
from devspawn.utils.commands import CommandResult


@pytest.fixture
def prober(tmp_path):
    """Prober rooted in an empty directory so host marker files are not seen."""
    return EnvironmentProber(timeout=1, root=str(tmp_path))


class TestEnvironmentProber:
    """Test EnvironmentProber."""

    @patch("devspawn.host.probe.shutil.which", return_value=None)
    def test_plain_host_is_local_only(self, mock_which, prober):
        """Test a host with neither Proxmox nor Docker."""
        with patch("devspawn.host.probe.command_succeeds") as mock_succeeds:
            assert prober.probe() == frozenset({HostEnvironment.LOCAL})
            mock_succeeds.assert_not_called()

    @patch("devspawn.host.probe.shutil.which", return_value=None)
    def test_proxmox_marker_file(self, mock_which, prober, tmp_path):
        (tmp_path / "etc" / "pve").mkdir(parents=True)
        (tmp_path / "etc" / "pve" / "version").write_text("8.1\n")
        assert prober.has_proxmox()
        assert HostEnvironment.PROXMOX_LXC in prober.probe()

    def test_proxmox_binary_on_path(self, prober):
        with patch("devspawn.host.probe.shutil.which", side_effect=lambda b: "/usr/sbin/pct" if b == "pct" else None):
            assert prober.has_proxmox()

    def test_proxmox_cluster_service(self, prober):
        with patch("devspawn.host.probe.shutil.which", side_effect=lambda b: "/bin/systemctl" if b == "systemctl" else None), \
                patch("devspawn.host.probe.command_succeeds", return_value=True) as mock_succeeds:
            assert prober.has_proxmox()
            mock_succeeds.assert_called_once_with(
                ["systemctl", "is-active", "--quiet", "pve-cluster"], timeout=1
            )

    def test_docker_needs_running_daemon(self, prober):
        with patch("devspawn.host.probe.shutil.which", return_value="/usr/bin/docker"), \
                patch("devspawn.host.probe.command_succeeds", return_value=False):
            assert not prober.has_docker()

        with patch("devspawn.host.probe.shutil.which", return_value="/usr/bin/docker"), \
                patch("devspawn.host.probe.command_succeeds", return_value=True) as mock_succeeds:
            assert prober.has_docker()
            mock_succeeds.assert_called_once_with(["docker", "info"], timeout=1)

    def test_docker_version(self, prober):
        with patch("devspawn.host.probe.run_command") as mock_run:
            mock_run.return_value = CommandResult(0, "Docker version 24.0.7, build afdd53b\n")
            assert prober.docker_version() == "Docker version 24.0.7, build afdd53b"

    def test_version_missing_binary(self, prober):
        with patch("devspawn.host.probe.run_command", side_effect=FileNotFoundError("pveversion")):
            assert prober.proxmox_version() is None


class TestChooseEnvironment:
    """Test target selection."""

    def test_only_local(self):
        chooser_calls = []
        env = choose_environment({HostEnvironment.LOCAL}, chooser=chooser_calls.append)
        assert env == HostEnvironment.LOCAL
        assert chooser_calls == []

    def test_requested_available(self):
        available = {HostEnvironment.LOCAL, HostEnvironment.DOCKER}
        assert choose_environment(available, requested=HostEnvironment.DOCKER) == HostEnvironment.DOCKER

    def test_requested_unavailable(self):
        with pytest.raises(WrongHostError):
            choose_environment({HostEnvironment.LOCAL}, requested=HostEnvironment.PROXMOX_LXC)

    def test_chooser_used_with_several_targets(self):
        available = {HostEnvironment.LOCAL, HostEnvironment.PROXMOX_LXC}
        env = choose_environment(available, chooser=lambda envs: HostEnvironment.PROXMOX_LXC)
        assert env == HostEnvironment.PROXMOX_LXC

    def test_auto_defaults_to_local(self):
        available = {HostEnvironment.LOCAL, HostEnvironment.PROXMOX_LXC, HostEnvironment.DOCKER}
        assert choose_environment(available) == HostEnvironment.LOCAL
