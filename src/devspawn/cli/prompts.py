"""Interactive questions asked before a run."""

from typing import Dict, FrozenSet, List, Optional

from pydantic import ValidationError
from rich.prompt import Confirm, IntPrompt, Prompt

from devspawn.cli.console import console
from devspawn.errors import ConfigError
from devspawn.models.container import ContainerSpec, FeatureFlags, HostEnvironment
from devspawn.models.mcp import McpCatalogEntry


def choose_environment(available: FrozenSet[HostEnvironment]) -> HostEnvironment:
    choices = [env for env in HostEnvironment if env in available]
    console.print("[bold]Where should the environment be installed?[/bold]")
    for index, env in enumerate(choices, start=1):
        console.print(f"  {index}) {env.label}")
    picked = IntPrompt.ask(
        "Select", choices=[str(i) for i in range(1, len(choices) + 1)], default=1, console=console
    )
    return choices[picked - 1]


def choose_project_mode() -> str:
    console.print("[bold]Project setup[/bold]")
    console.print("  new     - create a new project directory")
    console.print("  clone   - clone a Git repository")
    console.print("  current - use the current directory")
    return Prompt.ask("Mode", choices=["new", "clone", "current"], default="current", console=console)


def ask_repo_url() -> Optional[str]:
    url = Prompt.ask("Git repository URL", default="", console=console).strip()
    return url or None


def ask_project_name(default: str) -> str:
    return Prompt.ask("Project name", default=default, console=console).strip() or default


def choose_mcp_servers(catalog: Dict[str, McpCatalogEntry], recommended: List[str]) -> List[str]:
    console.print("[bold]MCP servers[/bold] (comma separated names, empty for recommended)")
    for name, entry in catalog.items():
        marker = "[green]*[/green]" if name in recommended else " "
        console.print(f"  {marker} [cyan]{name:<11}[/cyan] {entry.description}")
    answer = Prompt.ask("Servers", default=",".join(recommended), console=console)
    if answer.strip().lower() in ("none", "-"):
        return []
    picked = [name.strip() for name in answer.split(",") if name.strip()]
    unknown = [name for name in picked if name not in catalog]
    if unknown:
        console.print(f"[yellow]Ignoring unknown servers:[/yellow] {', '.join(unknown)}")
    return [name for name in picked if name in catalog]


def ask_container_name(default: str) -> str:
    """Ask until the answer is a valid hostname."""
    while True:
        name = Prompt.ask("Container name", default=default, console=console)
        try:
            return ContainerSpec(name=name).name
        except ValidationError:
            console.print(f"[red]Invalid container name: {name!r}.[/red] Use letters, digits and dashes.")


def ask_container_spec(
    spec: ContainerSpec,
    pools: Optional[List[str]] = None,
    bridges: Optional[List[str]] = None,
) -> ContainerSpec:
    """Prompt for every field, offering the current values as defaults."""
    updates = {}
    if spec.ctid is not None:
        updates["ctid"] = IntPrompt.ask("Container ID", default=spec.ctid, console=console)
    updates["name"] = ask_container_name(spec.name)
    updates["cores"] = IntPrompt.ask("CPU cores", default=spec.cores, console=console)
    updates["memory_mb"] = IntPrompt.ask("Memory (MB)", default=spec.memory_mb, console=console)
    updates["disk_gb"] = IntPrompt.ask("Disk size (GB)", default=spec.disk_gb, console=console)
    updates["dev_volume_gb"] = IntPrompt.ask(
        "Development volume (GB, 0 for none)", default=spec.dev_volume_gb, console=console
    )
    if pools:
        default_pool = spec.storage_pool if spec.storage_pool in pools else pools[0]
        updates["storage_pool"] = Prompt.ask(
            "Storage pool", choices=pools, default=default_pool, console=console
        )
    if bridges:
        default_bridge = spec.bridge if spec.bridge in bridges else bridges[0]
        updates["bridge"] = Prompt.ask(
            "Network bridge", choices=bridges, default=default_bridge, console=console
        )
    updates["features"] = FeatureFlags(
        nesting=Confirm.ask("Enable nesting", default=spec.features.nesting, console=console),
        keyctl=Confirm.ask("Enable keyctl", default=spec.features.keyctl, console=console),
        fuse=Confirm.ask("Enable FUSE", default=spec.features.fuse, console=console),
    )
    updates["unprivileged"] = Confirm.ask(
        "Unprivileged container", default=spec.unprivileged, console=console
    )
    try:
        return ContainerSpec(**{**spec.model_dump(), **updates})
    except ValidationError as e:
        raise ConfigError(f"Invalid container settings: {e}") from e


def ask_features(features):
    return features.model_copy(update={
        "install_vscode": Confirm.ask("Install VS Code Server", default=features.install_vscode, console=console),
        "install_docker": Confirm.ask("Install Docker", default=features.install_docker, console=console),
        "install_templates": Confirm.ask(
            "Install project templates", default=features.install_templates, console=console
        ),
    })


def confirm_start() -> bool:
    return Confirm.ask("Proceed with installation?", default=True, console=console)


def confirm_rollback(ref: str) -> bool:
    return Confirm.ask(
        f"Provisioning failed. Destroy container {ref}?", default=True, console=console
    )
