"""Post-install checks. Problems are reported, never raised."""

import logging
from typing import List

from devspawn.pipeline.runner import CommandRunner


logger = logging.getLogger(__name__)

CLAUDE_API_URL = "https://api.anthropic.com/v1/models"


def validate_installation(runner: CommandRunner, features, systemd: bool = True) -> List[str]:
    """Check services, tools and API reachability; return a list of issues."""
    issues = []

    if systemd:
        services = ["ssh"]
        if features.install_docker:
            services.append("docker")
        if features.install_vscode:
            services.append("code-server")
        for service in services:
            if not runner.check(f"systemctl is-active --quiet {service}", timeout=30):
                issues.append(f"Service {service} is not running")

    tools = ["git", "curl"]
    if features.install_node:
        tools.extend(["node", "npm"])
    if features.install_docker and systemd:
        tools.append("docker")
    tools.append("claude")
    for tool in tools:
        if not runner.check(f"command -v {tool}", timeout=30):
            issues.append(f"Tool {tool} is not available")

    if not runner.check(f"curl -s --connect-timeout 5 -o /dev/null {CLAUDE_API_URL}", timeout=30):
        issues.append("Cannot reach Claude API (may affect authentication)")

    for issue in issues:
        logger.warning(issue)
    if not issues:
        logger.info("All components validated successfully")
    return issues
