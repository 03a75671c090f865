"""Pre-flight validation of backend tooling and port availability."""

import shutil
import socket
import subprocess
from typing import Dict, List, Optional, Tuple

from astra_stack.config.models import Component, DeploymentMode, StackSettings
from astra_stack.config.registry import ComponentRegistry
from astra_stack.utils.errors import ErrorContext, PreflightError
from astra_stack.utils.logging import get_logger

logger = get_logger(__name__)


# Tools every backend needs on PATH
REQUIRED_TOOLS: Dict[DeploymentMode, List[str]] = {
    DeploymentMode.DOCKER: ["docker"],
    DeploymentMode.KUBERNETES: ["kubectl", "helm"],
    DeploymentMode.SOURCE: ["git", "curl", "jq"],
    DeploymentMode.MIXED: ["git", "curl", "jq"],
}

INSTALL_HINTS = {
    "bash": "Install bash; component scripts are run with it",
    "docker": "Install Docker: https://docs.docker.com/get-docker/",
    "docker compose": "Install the Docker Compose plugin or docker-compose",
    "kubectl": "Install kubectl: https://kubernetes.io/docs/tasks/tools/",
    "helm": "Install Helm: https://helm.sh/docs/intro/install/",
    "git": "Install git from your package manager",
    "curl": "Install curl from your package manager",
    "jq": "Install jq from your package manager",
}


class PreflightChecker:
    """Checks that the selected backend can run before anything is deployed."""

    def __init__(self, settings: StackSettings, registry: ComponentRegistry):
        """
        Initialize pre-flight checker.

        Args:
            settings: Run settings; the deployment mode selects the tools
            registry: Components whose ports are checked
        """
        self.settings = settings
        self.registry = registry

    def enabled(self) -> bool:
        """Pre-flight is skipped for dry runs or when explicitly disabled."""
        return not (self.settings.dry_run or self.settings.skip_preflight)

    def run(self, ports: bool = True) -> List[Component]:
        """
        Run every check.

        Args:
            ports: Also check component ports. A restart skips this because
                the running stack still holds them.

        Returns:
            Components whose port is already in use

        Raises:
            PreflightError: If required tooling is missing
        """
        if not self.enabled():
            logger.debug("Pre-flight checks skipped")
            return []

        self.check_tools()
        return self.check_ports() if ports else []

    def check_tools(self) -> None:
        """
        Verify the tools needed by the deployment mode are installed.

        Raises:
            PreflightError: Listing every missing tool
        """
        mode = self.settings.deployment_mode
        logger.info(f"Checking prerequisites for {mode.value} mode...")

        missing = [tool for tool in ["bash"] + REQUIRED_TOOLS[mode] if not self.has_tool(tool)]

        if mode == DeploymentMode.DOCKER and "docker" not in missing and not self.has_compose():
            missing.append("docker compose")

        if missing:
            raise PreflightError(
                f"Missing required tools for {mode.value} mode: {', '.join(missing)}",
                context=ErrorContext(
                    operation='preflight',
                    additional_info={'missing': missing, 'mode': mode.value}
                ),
                suggestions=[INSTALL_HINTS[tool] for tool in missing if tool in INSTALL_HINTS]
            )

        logger.info(f"{mode.value.capitalize()} environment is ready")

    def check_ports(self) -> List[Component]:
        """
        Find components whose port is already bound on their host.

        A busy port usually means a previous run is still up; it is reported,
        not treated as fatal.

        Returns:
            Components whose port could not be bound
        """
        busy = []
        for component in self.registry:
            available, error = self.is_port_available(component.port, component.host)
            if not available:
                busy.append(component)
                logger.warning(
                    f"Port {component.port} is already in use ({error})",
                    extra={'component': component.name}
                )
        return busy

    @staticmethod
    def has_tool(tool: str) -> bool:
        """Check if an executable is on PATH."""
        return shutil.which(tool) is not None

    @staticmethod
    def has_compose() -> bool:
        """Check for ``docker-compose`` or the ``docker compose`` plugin."""
        if shutil.which("docker-compose"):
            return True
        try:
            result = subprocess.run(
                ["docker", "compose", "version"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=10
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"docker compose version failed: {e}")
            return False
        return result.returncode == 0

    @staticmethod
    def is_port_available(port: int, host: str = "localhost") -> Tuple[bool, Optional[str]]:
        """
        Check whether a port can be bound.

        Args:
            port: TCP port
            host: Interface to bind

        Returns:
            Tuple of (is_available, error_message)
        """
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind((host, port))
                return True, None
        except OSError as e:
            return False, e.strerror or str(e)
