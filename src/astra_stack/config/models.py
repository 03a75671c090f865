"""Pydantic models for the component registry and run settings."""

import re
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# One DNS label: letters, digits and inner hyphens, at most 63 characters
HOST_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


class DeploymentMode(str, Enum):
    """Backend used to realize the components."""

    DOCKER = "docker"
    KUBERNETES = "kubernetes"
    SOURCE = "source"
    MIXED = "mixed"


class ExecutionMode(Enum):
    """How the plan's steps are executed."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class Component(BaseModel):
    """One independently deployable service in the stack."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=64, pattern="^[a-z0-9-]+$")
    port: int = Field(..., ge=1, le=65535)
    health_path: str = Field("/", min_length=1)
    host: str = Field("localhost", min_length=1)
    startup_delay: float = Field(0, ge=0, description="Seconds to wait before starting the next component")
    depends_on: FrozenSet[str] = Field(default_factory=frozenset)
    environment: Dict[str, str] = Field(default_factory=dict)
    backend_aliases: Dict[str, str] = Field(default_factory=dict)
    mixed_backend: DeploymentMode = DeploymentMode.DOCKER
    script: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Component names must start with a letter."""
        if not v[0].isalpha():
            raise ValueError("Component name must start with a letter")
        return v

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Hosts are DNS names or IPv4 addresses that fit in a URL."""
        if len(v) > 253 or not all(HOST_LABEL.match(label) for label in v.split(".")):
            raise ValueError(f"Invalid host name: {v!r}")
        return v

    @field_validator("health_path")
    @classmethod
    def validate_health_path(cls, v: str) -> str:
        """Health paths are absolute URL paths."""
        if not v.startswith("/"):
            raise ValueError(f"Health path must start with '/': {v}")
        return v

    @field_validator("mixed_backend")
    @classmethod
    def validate_mixed_backend(cls, v: DeploymentMode) -> DeploymentMode:
        """A component cannot itself be deployed in mixed mode."""
        if v == DeploymentMode.MIXED:
            raise ValueError("mixed_backend must be a concrete backend")
        return v

    @property
    def health_url(self) -> str:
        """URL probed to decide whether the component is ready."""
        return f"http://{self.host}:{self.port}{self.health_path}"

    @property
    def script_name(self) -> str:
        """Filename of the component's deploy/stop script."""
        return self.script or f"deploy-{self.name}.sh"

    def resolve_backend(self, mode: DeploymentMode) -> str:
        """Backend name handed to the component's script for a stack mode.

        Args:
            mode: Stack-wide deployment mode

        Returns:
            Backend name understood by this component
        """
        backend = self.mixed_backend if mode == DeploymentMode.MIXED else mode
        return self.backend_aliases.get(backend.value, backend.value)


class StackSettings(BaseModel):
    """Settings for one orchestrator run."""

    model_config = ConfigDict(frozen=True)

    deployment_mode: DeploymentMode = DeploymentMode.DOCKER
    parallel_deployment: bool = False
    skip_health_checks: bool = False
    dry_run: bool = False
    health_check_timeout: int = Field(120, ge=1)
    health_check_interval: float = Field(2.0, gt=0)
    probe_request_timeout: float = Field(5.0, gt=0)
    parallel_respect_dependencies: bool = False
    restart_cooldown: float = Field(10.0, ge=0)
    skip_preflight: bool = False
    max_workers: int = Field(10, ge=1)
    config_path: Optional[Path] = None
    scripts_dir: Path = Path("scripts")
    log_dir: Path = Path("logs")

    @property
    def execution_mode(self) -> ExecutionMode:
        """Execution mode shared by every component in the run."""
        return ExecutionMode.PARALLEL if self.parallel_deployment else ExecutionMode.SEQUENTIAL

    @property
    def probing_enabled(self) -> bool:
        """Whether deployed components are health-checked."""
        return not (self.skip_health_checks or self.dry_run)
