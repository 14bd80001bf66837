"""Main CLI implementation using Typer."""

import logging
from pathlib import Path
from typing import Optional

import typer

from devspawn import __version__
from devspawn.cli import prompts
from devspawn.cli.console import (
    RichProgress,
    console,
    environments_table,
    render_completion,
    render_error,
    spec_table,
)
from devspawn.config import ConfigManager
from devspawn.errors import ConfigError, DevspawnError, UserCancelledError
from devspawn.host.allocator import ResourceAllocator
from devspawn.host.probe import EnvironmentProber, choose_environment
from devspawn.models.container import ContainerSpec, HostEnvironment
from devspawn.models.provision import ProvisionOptions
from devspawn.pipeline.engine import ProvisioningPipeline
from devspawn.pipeline.mcp import load_catalog, recommended_servers
from devspawn.providers.registry import ProviderRegistry
from devspawn.utils.logging import setup_logging


logger = logging.getLogger(__name__)

app = typer.Typer(
    name="devspawn",
    help="Provision a Claude Code development environment locally, in a Proxmox LXC container or in Docker.",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _load_config(config_path: Optional[Path], auto: bool):
    manager = ConfigManager(config_path)
    return manager, manager.load(apply_env=auto)


def _build_spec(config, manager: ConfigManager, environment: HostEnvironment) -> ContainerSpec:
    defaults = config.container
    return ContainerSpec(
        name=defaults.name,
        ctid=manager.container_id,
        cores=defaults.cores,
        memory_mb=defaults.memory_mb,
        disk_gb=defaults.disk_gb,
        os_template=defaults.os_template,
        features=defaults.features,
        unprivileged=defaults.unprivileged,
        dev_volume_gb=defaults.dev_volume_gb,
        ip_config=defaults.ip_config,
        tags=defaults.tags if environment == HostEnvironment.PROXMOX_LXC else [],
    )


def _ask_spec(spec: ContainerSpec, config, environment: HostEnvironment) -> ContainerSpec:
    pools = bridges = None
    if environment == HostEnvironment.PROXMOX_LXC:
        allocator = ResourceAllocator(config)
        if spec.ctid is None:
            spec = spec.model_copy(update={"ctid": allocator.next_container_id(config.container.id_floor)})
        eligible = allocator.eligible_storage_pools()
        pools = [
            pool.name for pool in eligible if pool.available_gb >= spec.required_storage_gb
        ] or [pool.name for pool in eligible]
        bridges = allocator.network_bridges()
    return prompts.ask_container_spec(spec, pools=pools, bridges=bridges)


def _hints(environment: Optional[HostEnvironment], config, error: DevspawnError, pipeline=None):
    if environment is None or environment == HostEnvironment.LOCAL or error.stage is None:
        return []
    if pipeline is not None and pipeline.provider is not None:
        return pipeline.provider.troubleshooting(error.stage)
    return ProviderRegistry().create(environment, config).troubleshooting(error.stage)


@app.callback(invoke_without_command=True)
def install(
    ctx: typer.Context,
    auto: bool = typer.Option(False, "--auto", help="Accept defaults and skip all prompts"),
    target: Optional[HostEnvironment] = typer.Option(
        None, "--target", "-t", case_sensitive=False, help="Install target"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    project_mode: Optional[str] = typer.Option(
        None, "--project-mode", help="new, clone or current"
    ),
    repo: Optional[str] = typer.Option(None, "--repo", help="Repository to clone (clone mode)"),
    ssh_key: Optional[Path] = typer.Option(
        None, "--ssh-key", help="Public key authorized for the developer user"
    ),
    no_vscode: bool = typer.Option(False, "--no-vscode", help="Skip VS Code Server"),
    no_docker: bool = typer.Option(False, "--no-docker", help="Skip Docker engine"),
    no_templates: bool = typer.Option(False, "--no-templates", help="Skip project templates"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
):
    """Provision a development environment (the default command)."""
    if ctx.invoked_subcommand is not None:
        return

    environment = None
    config = None
    log_file = None
    pipeline = None
    try:
        manager, config = _load_config(config_path, auto)
        log_file = setup_logging(config.logging.level, config.logging.log_dir, verbose)
        logger.info(f"devspawn {__version__} starting (auto={auto})")

        features = config.features.model_copy(update={
            key: False for key, flag in (
                ("install_vscode", no_vscode),
                ("install_docker", no_docker),
                ("install_templates", no_templates),
            ) if flag
        })
        config = config.model_copy(update={"features": features})

        if project_mode is not None and project_mode not in ("new", "clone", "current"):
            raise ConfigError(f"Invalid project mode: {project_mode}")
        if project_mode == "clone" and auto and not repo:
            raise ConfigError("--repo is required with --project-mode clone in auto mode")

        prober = EnvironmentProber(timeout=config.timeouts.probe)
        available = prober.probe()
        environment = choose_environment(
            available, requested=target, chooser=None if auto else prompts.choose_environment
        )
        console.print(f"Installing into: [bold]{environment.label}[/bold]")

        if project_mode is None:
            project_mode = "current" if auto else prompts.choose_project_mode()
        project_name = config.container.name
        if project_mode == "new" and not auto:
            project_name = prompts.ask_project_name("claude-project")
        elif project_mode == "new":
            project_name = "claude-project"
        if project_mode == "clone" and not repo:
            repo = prompts.ask_repo_url()

        catalog = load_catalog()
        recommended = recommended_servers(
            catalog, on_proxmox=HostEnvironment.PROXMOX_LXC in available
        )
        mcp_servers = recommended if auto else prompts.choose_mcp_servers(catalog, recommended)

        ssh_public_key = None
        if ssh_key is not None:
            try:
                ssh_public_key = ssh_key.expanduser().read_text().strip()
            except OSError as e:
                raise ConfigError(f"Cannot read SSH key {ssh_key}: {e}")

        options = ProvisionOptions(
            environment=environment,
            auto=auto,
            interactive=not auto,
            project_mode=project_mode,
            project_name=project_name,
            repo_url=repo,
            mcp_servers=mcp_servers,
            ssh_public_key=ssh_public_key,
        )

        spec = None
        if environment != HostEnvironment.LOCAL:
            spec = _build_spec(config, manager, environment)
            if not auto:
                spec = _ask_spec(spec, config, environment)
                config = config.model_copy(update={"features": prompts.ask_features(config.features)})
            console.print(spec_table(spec, environment, config.features))
            if not auto and not prompts.confirm_start():
                raise UserCancelledError("Installation cancelled")

        pipeline = ProvisioningPipeline(
            config,
            options,
            spec=spec,
            progress=RichProgress(console),
            confirm_rollback=None if auto else prompts.confirm_rollback,
            log_file=str(log_file) if log_file else None,
        )
        result = pipeline.run()
        render_completion(result)
    except DevspawnError as e:
        logger.error(f"{e.category}: {e.message}")
        render_error(e, _hints(environment, config, e, pipeline), str(log_file) if log_file else None)
        raise typer.Exit(e.exit_code)
    except KeyboardInterrupt:
        console.print("[red]Interrupted[/red]")
        raise typer.Exit(130)
    except typer.Exit:
        raise
    except Exception as e:
        logger.exception("Unexpected error")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command("detect")
def detect_command(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """Show which install targets this host supports."""
    try:
        _, config = _load_config(config_path, auto=False)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(e.exit_code)

    prober = EnvironmentProber(timeout=config.timeouts.probe)
    available = prober.probe()
    details = {HostEnvironment.LOCAL: "always available"}
    if HostEnvironment.PROXMOX_LXC in available:
        details[HostEnvironment.PROXMOX_LXC] = prober.proxmox_version() or ""
    if HostEnvironment.DOCKER in available:
        details[HostEnvironment.DOCKER] = prober.docker_version() or ""
    console.print(environments_table(available, details))


@app.command("destroy")
def destroy_command(
    ref: str = typer.Argument(..., help="Proxmox container ID or Docker container name"),
    target: HostEnvironment = typer.Option(
        HostEnvironment.PROXMOX_LXC, "--target", "-t", case_sensitive=False, help="Container runtime"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """Stop and remove a container left behind by a failed run."""
    if target == HostEnvironment.LOCAL:
        console.print("[red]Error:[/red] Nothing to destroy for the local target")
        raise typer.Exit(2)
    try:
        _, config = _load_config(config_path, auto=False)
        if target == HostEnvironment.PROXMOX_LXC:
            if not ref.isdigit():
                raise ConfigError(f"Proxmox container ID must be numeric, got {ref!r}")
            spec = ContainerSpec(name=f"ct{ref}", ctid=int(ref))
        else:
            spec = ContainerSpec(name=ref)
    except (ConfigError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    provider = ProviderRegistry().create(target, config)
    provider.adopt(spec)
    if not provider.exists():
        console.print(f"[red]Error:[/red] Container {ref} does not exist")
        raise typer.Exit(1)
    if not force and not typer.confirm(f"Destroy container {ref}?"):
        raise typer.Abort()
    if not provider.destroy():
        console.print(f"[red]Error:[/red] Failed to destroy container {ref}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Container {ref} destroyed")


def main():
    """Main entry point for CLI."""
    app()
