"""Tests for terminal rendering."""

from io import StringIO

from rich.console import Console

from devspawn.cli.console import RichProgress, environments_table, render_error, spec_table
from devspawn.errors import InsufficientSpaceError
from devspawn.models.config import FeatureConfig
from devspawn.models.container import ContainerSpec, HostEnvironment, ProvisioningStage


def make_console():
    return Console(file=StringIO(), width=120, force_terminal=False)


def rendered(console):
    return console.file.getvalue()


def test_nested_tasks_share_one_display():
    console = make_console()
    progress = RichProgress(console)
    with progress.task("Installing 3 packages"):
        outer = progress._progress
        with progress.task("Installing git"):
            assert progress._progress is outer
    assert progress._progress is None


def test_quiet_progress_still_warns():
    console = make_console()
    progress = RichProgress(console, quiet=True)
    progress.stage(ProvisioningStage.VALIDATION)
    progress.info("hidden")
    progress.warning("shown")
    output = rendered(console)
    assert "hidden" not in output
    assert "shown" in output


def test_spec_table():
    console = make_console()
    spec = ContainerSpec(name="claude-code-dev", ctid=120, storage_pool="local-lvm", bridge="vmbr0")
    console.print(spec_table(spec, HostEnvironment.PROXMOX_LXC, FeatureConfig(install_docker=False)))
    output = rendered(console)
    assert "120" in output
    assert "local-lvm" in output
    assert "Docker" not in output.split("Components")[1]


def test_environments_table():
    console = make_console()
    console.print(environments_table({HostEnvironment.LOCAL}, {HostEnvironment.LOCAL: "always available"}))
    output = rendered(console)
    assert "Local system" in output
    assert "Docker container" not in output


def test_render_error(monkeypatch):
    console = make_console()
    monkeypatch.setattr("devspawn.cli.console.stderr_console", console)
    error = InsufficientSpaceError("local-lvm", have=60, need=70)
    error.stage = ProvisioningStage.VALIDATION
    render_error(error, ["pvesm status"], "/tmp/devspawn.log")
    output = rendered(console)
    assert "Validation error" in output
    assert "need 70GB, have 60GB" in output
    assert "pvesm status" in output
    assert "/tmp/devspawn.log" in output
