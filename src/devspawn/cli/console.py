"""Terminal rendering with rich."""

from contextlib import contextmanager
from typing import Iterable, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from devspawn.errors import DevspawnError
from devspawn.models.container import ContainerSpec, HostEnvironment
from devspawn.models.provision import ProvisionResult
from devspawn.utils.progress import ProgressReporter


console = Console()
stderr_console = Console(stderr=True)


class RichProgress(ProgressReporter):
    """Spinner per running task; nested tasks share one live display."""

    def __init__(self, console: Console = console, quiet: bool = False):
        self.console = console
        self.quiet = quiet
        self._progress: Optional[Progress] = None

    def stage(self, stage):
        if not self.quiet:
            self.console.rule(f"[bold cyan]{stage.value}")

    @contextmanager
    def task(self, description: str):
        owner = self._progress is None
        if owner:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                TimeElapsedColumn(),
                console=self.console,
                transient=True,
                disable=self.quiet,
            )
            self._progress.start()
        progress = self._progress
        task_id = progress.add_task(description, total=None)
        try:
            yield
        finally:
            progress.remove_task(task_id)
            if owner:
                progress.stop()
                self._progress = None

    def info(self, message: str):
        if not self.quiet:
            self.console.print(f"[blue]•[/blue] {message}")

    def success(self, message: str):
        if not self.quiet:
            self.console.print(f"[green]✓[/green] {message}")

    def warning(self, message: str):
        self.console.print(f"[yellow]Warning:[/yellow] {message}")


def environments_table(available: Iterable[HostEnvironment], details: dict) -> Table:
    table = Table(title="Available environments")
    table.add_column("Target", style="cyan")
    table.add_column("Description")
    table.add_column("Details", style="dim")
    for env in HostEnvironment:
        if env in available:
            table.add_row(env.value, env.label, details.get(env, ""))
    return table


def spec_table(spec: ContainerSpec, environment: HostEnvironment, features) -> Table:
    table = Table(title="Configuration summary", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Target", environment.label)
    if spec.ctid is not None:
        table.add_row("Container ID", str(spec.ctid))
    table.add_row("Name", spec.name)
    table.add_row("Resources", f"{spec.cores} vCPU, {spec.memory_mb}MB RAM, {spec.disk_gb}GB disk")
    if spec.dev_volume_gb:
        table.add_row("Development volume", f"{spec.dev_volume_gb}GB")
    if spec.storage_pool:
        table.add_row("Storage pool", spec.storage_pool)
    if spec.bridge:
        table.add_row("Network bridge", spec.bridge)
    table.add_row("OS", spec.os_template)
    enabled = [
        label for label, flag in (
            ("VS Code Server", features.install_vscode),
            ("Docker", features.install_docker),
            ("Node.js", features.install_node),
            ("Project templates", features.install_templates),
        ) if flag
    ]
    table.add_row("Components", ", ".join(enabled) or "none")
    return table


def render_completion(result: ProvisionResult):
    lines = []
    if result.environment == HostEnvironment.LOCAL:
        lines.append(f"Project: {result.project_path}")
        if result.mcp_config_path:
            lines.append(f"MCP config: {result.mcp_config_path} (add your API tokens)")
        lines.append("Start Claude Code with: [green]claude[/green]")
    else:
        lines.append(f"Container: {result.name} ({result.container_ref})")
        lines.append(f"IP address: {result.ip_address or 'unknown'}")
        if result.cores:
            lines.append(
                f"Resources: {result.cores} vCPU, {result.memory_mb}MB RAM, {result.disk_gb}GB disk"
            )
        if result.environment == HostEnvironment.PROXMOX_LXC:
            lines.append(f"Console: [green]pct enter {result.container_ref} && su - {result.developer_user}[/green]")
            if result.ip_address:
                lines.append(f"SSH: [green]ssh {result.developer_user}@{result.ip_address}[/green]")
        else:
            lines.append(f"Shell: [green]docker exec -it -u {result.developer_user} {result.container_ref} zsh[/green]")
        if result.vscode_url:
            lines.append(f"VS Code Server: {result.vscode_url}")
        if result.vscode_password:
            lines.append(f"VS Code password: {result.vscode_password}")
        if result.project_path:
            lines.append(f"Project: {result.project_path}")
        if result.mcp_config_path:
            lines.append(f"MCP config: {result.mcp_config_path}")
        if not result.dev_volume:
            lines.append("[dim]No separate development volume attached[/dim]")
        lines.append("Run [green]health-check[/green] inside the container for diagnostics")

    if result.validation_issues:
        lines.append("")
        lines.append("[yellow]Some components need attention:[/yellow]")
        lines.extend(f"  - {issue}" for issue in result.validation_issues)
    if result.log_file:
        lines.append(f"[dim]Log file: {result.log_file}[/dim]")

    console.print(Panel("\n".join(lines), title="Claude Code development environment ready", border_style="green"))


def render_error(error: DevspawnError, hints: List[str], log_file: Optional[str] = None):
    stderr_console.print(f"[red]{error.category}:[/red] {error.message}")
    if error.stage is not None:
        stderr_console.print(f"[dim]Failed during stage: {error.stage.value}[/dim]")
    if hints:
        stderr_console.print("[yellow]Troubleshooting:[/yellow]")
        for hint in hints:
            stderr_console.print(f"  [cyan]{hint}[/cyan]")
    if log_file:
        stderr_console.print(f"[dim]Log file: {log_file}[/dim]")
