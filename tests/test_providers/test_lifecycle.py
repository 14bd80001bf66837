"""Tests for the container lifecycle state machine."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from devspawn.errors import (
    BootTimeoutError,
    CreateFailedError,
    LifecycleError,
    NetworkTimeoutError,
    StartFailedError,
)
from devspawn.models.config import DevspawnConfig
from devspawn.models.container import ContainerSpec
from devspawn.providers.base import BOOT_MARKER, ContainerState
from devspawn.providers.proxmox import ProxmoxProvider
from devspawn.utils.commands import CommandResult

TEMPLATE = "local:vztmpl/ubuntu-22.04-standard_22.04-1_amd64.tar.zst"


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def spec():
    return ContainerSpec(name="claude-code-dev", ctid=120, storage_pool="local-lvm", bridge="vmbr0")


def make_provider(clock, **overrides):
    config = DevspawnConfig(**overrides)
    return ProxmoxProvider(config, catalog=MagicMock(), clock=clock, sleep=clock.sleep)


def exec_script(boot_ok=True, reachable=()):
    """run_command stand-in answering pct exec probes."""
    def fake_run(cmd, check=True, timeout=None, **kwargs):
        if cmd[:2] == ["pct", "exec"]:
            shell = cmd[-1]
            if shell == BOOT_MARKER:
                return CommandResult(0 if boot_ok else 1)
            if shell.startswith("ping"):
                target = shell.split()[-1]
                return CommandResult(0 if target in reachable else 1)
        return CommandResult(0)
    return fake_run


class TestTransitions:
    """Test the linear transition order."""

    @patch("devspawn.providers.base.run_command")
    def test_happy_path(self, mock_run, clock, spec):
        mock_run.side_effect = exec_script(reachable=("8.8.8.8",))
        provider = make_provider(clock)

        provider.create(spec, TEMPLATE)
        assert provider.state == ContainerState.CREATED
        assert provider.create_attempted
        provider.start()
        provider.wait_boot_ready()
        provider.wait_network_ready()
        assert provider.state == ContainerState.NETWORK_READY

        commands = [c[0][0][:2] for c in mock_run.call_args_list]
        assert commands[0] == ["pct", "create"]
        assert commands[1] == ["pct", "start"]

    def test_start_before_create(self, clock):
        provider = make_provider(clock)
        with pytest.raises(LifecycleError):
            provider.start()

    @patch("devspawn.providers.base.run_command", return_value=CommandResult(0))
    def test_no_skipping_boot(self, mock_run, clock, spec):
        provider = make_provider(clock)
        provider.create(spec, TEMPLATE)
        provider.start()
        with pytest.raises(LifecycleError):
            provider.wait_network_ready()

    @patch("devspawn.providers.base.run_command", return_value=CommandResult(0))
    def test_create_twice(self, mock_run, clock, spec):
        provider = make_provider(clock)
        provider.create(spec, TEMPLATE)
        with pytest.raises(LifecycleError):
            provider.create(spec, TEMPLATE)

    @patch("devspawn.providers.base.run_command")
    def test_create_failure(self, mock_run, clock, spec):
        mock_run.side_effect = subprocess.CalledProcessError(
            255, ["pct", "create"], stderr="unable to create CT 120 - already exists"
        )
        provider = make_provider(clock)
        with pytest.raises(CreateFailedError, match="already exists"):
            provider.create(spec, TEMPLATE)
        assert provider.state == ContainerState.FAILED
        assert provider.create_attempted

    @patch("devspawn.providers.base.run_command")
    def test_start_timeout(self, mock_run, clock, spec):
        mock_run.side_effect = [CommandResult(0), subprocess.TimeoutExpired(["pct", "start"], 120)]
        provider = make_provider(clock)
        provider.create(spec, TEMPLATE)
        with pytest.raises(StartFailedError, match="timed out"):
            provider.start()
        assert provider.state == ContainerState.FAILED

    def test_execute_requires_started(self, clock, spec):
        provider = make_provider(clock)
        with pytest.raises(LifecycleError):
            provider.execute("true")


class TestReadiness:
    """Test boot and network readiness polling with a fake clock."""

    def _started(self, clock, spec, mock_run, **overrides):
        mock_run.return_value = CommandResult(0)
        provider = make_provider(clock, **overrides)
        provider.create(spec, TEMPLATE)
        provider.start()
        return provider

    @patch("devspawn.providers.base.run_command")
    def test_boot_timeout(self, mock_run, clock, spec):
        """Test a container that never boots fails after the deadline, not before."""
        provider = self._started(clock, spec, mock_run)
        mock_run.side_effect = exec_script(boot_ok=False)

        with pytest.raises(BootTimeoutError):
            provider.wait_boot_ready(timeout=5)

        assert clock.now >= 5
        assert provider.state == ContainerState.FAILED
        probes = [c for c in mock_run.call_args_list if c[0][0][-1] == BOOT_MARKER]
        assert len(probes) == len(clock.sleeps) + 1

    @patch("devspawn.providers.base.run_command")
    def test_boot_ready_after_retries(self, mock_run, clock, spec):
        provider = self._started(clock, spec, mock_run)
        mock_run.side_effect = [CommandResult(1), CommandResult(1), CommandResult(0)]
        provider.wait_boot_ready(timeout=60)
        assert provider.state == ContainerState.BOOT_READY
        assert clock.sleeps == [1, 1]

    @patch("devspawn.providers.base.run_command")
    def test_network_any_policy(self, mock_run, clock, spec):
        provider = self._started(clock, spec, mock_run)
        mock_run.side_effect = exec_script(reachable=("archive.ubuntu.com",))
        provider.wait_boot_ready()
        provider.wait_network_ready(timeout=10)
        assert provider.state == ContainerState.NETWORK_READY

    @patch("devspawn.providers.base.run_command")
    def test_network_all_policy(self, mock_run, clock, spec):
        provider = self._started(clock, spec, mock_run, policy={"network_readiness": "all"})
        mock_run.side_effect = exec_script(reachable=("8.8.8.8", "1.1.1.1"))
        provider.wait_boot_ready()
        with pytest.raises(NetworkTimeoutError):
            provider.wait_network_ready(timeout=10)
        assert clock.now >= 10

    @patch("devspawn.providers.base.run_command")
    def test_network_all_reachable(self, mock_run, clock, spec):
        provider = self._started(clock, spec, mock_run, policy={"network_readiness": "all"})
        mock_run.side_effect = exec_script(reachable=("8.8.8.8", "1.1.1.1", "archive.ubuntu.com"))
        provider.wait_boot_ready()
        provider.wait_network_ready(timeout=10)
        assert provider.state == ContainerState.NETWORK_READY

    @patch("devspawn.providers.base.run_command")
    def test_probe_timeout_counts_as_failure(self, mock_run, clock, spec):
        provider = self._started(clock, spec, mock_run)
        mock_run.side_effect = subprocess.TimeoutExpired(["pct"], 10)
        with pytest.raises(BootTimeoutError):
            provider.wait_boot_ready(timeout=3)

    @patch("devspawn.providers.base.run_command")
    def test_execute_does_not_check(self, mock_run, clock, spec):
        provider = self._started(clock, spec, mock_run)
        mock_run.return_value = CommandResult(2, "", "no such file")
        result = provider.execute("ls /missing")
        assert result.returncode == 2
        assert mock_run.call_args[1]["check"] is False
