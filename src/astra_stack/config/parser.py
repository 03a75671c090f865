"""Environment and YAML configuration loading."""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from astra_stack.config.models import Component, StackSettings
from astra_stack.config.registry import ComponentRegistry
from astra_stack.utils.errors import ConfigurationError
from astra_stack.utils.logging import get_logger

logger = get_logger(__name__)


# Environment variable -> StackSettings field
ENV_VARS = {
    "DEPLOYMENT_MODE": "deployment_mode",
    "PARALLEL_DEPLOYMENT": "parallel_deployment",
    "SKIP_HEALTH_CHECKS": "skip_health_checks",
    "DRY_RUN": "dry_run",
    "HEALTH_CHECK_TIMEOUT": "health_check_timeout",
    "HEALTH_CHECK_INTERVAL": "health_check_interval",
    "PARALLEL_RESPECT_DEPENDENCIES": "parallel_respect_dependencies",
    "RESTART_COOLDOWN": "restart_cooldown",
    "SKIP_PREFLIGHT": "skip_preflight",
    "ASTRA_STACK_CONFIG": "config_path",
    "ASTRA_SCRIPTS_DIR": "scripts_dir",
    "ASTRA_LOG_DIR": "log_dir",
}


def _validation_errors(error: ValidationError, prefix: List[Any]) -> List[Dict]:
    return [
        {"loc": prefix + list(item["loc"]), "msg": item["msg"]}
        for item in error.errors()
    ]


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any
) -> StackSettings:
    """Build run settings from environment variables.

    Args:
        environ: Environment mapping (defaults to ``os.environ``)
        **overrides: Field values that take precedence over the environment;
            ``None`` values are ignored

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If a value is invalid
    """
    environ = os.environ if environ is None else environ

    values: Dict[str, Any] = {}
    for env_name, field_name in ENV_VARS.items():
        raw = environ.get(env_name)
        if raw is not None and raw.strip() != "":
            values[field_name] = raw.strip().lower() if field_name == "deployment_mode" else raw.strip()

    values.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return StackSettings(**values)
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid stack settings",
            errors=_validation_errors(e, ["settings"]),
            cause=e
        )


def load_registry(config_path: Optional[Path] = None) -> ComponentRegistry:
    """Load the component registry.

    Args:
        config_path: YAML file with a ``components`` list; the built-in
            registry is used when omitted

    Returns:
        Validated registry

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    if config_path is None:
        return ComponentRegistry.default()

    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML: {e}", cause=e)

    if not isinstance(data, dict) or "components" not in data:
        raise ConfigurationError(
            "Configuration validation failed",
            errors=[{"loc": ["components"], "msg": "Required field 'components' is missing"}]
        )

    raw_components = data["components"]
    if not isinstance(raw_components, list) or not raw_components:
        raise ConfigurationError(
            "Configuration validation failed",
            errors=[{"loc": ["components"], "msg": "At least one component must be defined"}]
        )

    components = []
    errors: List[Dict] = []
    for idx, raw in enumerate(raw_components):
        if not isinstance(raw, dict):
            errors.append({"loc": ["components", idx], "msg": "Component must be a mapping"})
            continue
        try:
            components.append(Component(**raw))
        except ValidationError as e:
            errors.extend(_validation_errors(e, ["components", idx]))

    if errors:
        raise ConfigurationError(
            f"Configuration validation failed with {len(errors)} error(s)",
            errors=errors
        )

    logger.info(f"Loaded {len(components)} component(s) from {path}")
    return ComponentRegistry(components)


class StackConfig:
    """Settings plus registry for one invocation."""

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any
    ):
        self.environ = environ
        self.overrides = overrides
        self.settings: Optional[StackSettings] = None
        self.registry: Optional[ComponentRegistry] = None

    def load(self) -> "StackConfig":
        """Load and validate settings and registry.

        Returns:
            Self for method chaining

        Raises:
            ConfigurationError: If anything is invalid
        """
        self.settings = load_settings(self.environ, **self.overrides)
        self.registry = load_registry(self.settings.config_path)
        return self
