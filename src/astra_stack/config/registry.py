"""Static registry of the components that make up the stack."""

from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from astra_stack.config.dependency_graph import DependencyGraph
from astra_stack.config.models import Component, DeploymentMode
from astra_stack.utils.errors import ConfigurationError, ErrorContext
from astra_stack.utils.logging import get_logger

logger = get_logger(__name__)


DEFAULT_COMPONENTS: Tuple[Component, ...] = (
    Component(
        name="astra-xmod-shim",
        port=7777,
        health_path="/api/v1/plugins",
        startup_delay=10,
        backend_aliases={"source": "local"},
        mixed_backend=DeploymentMode.SOURCE,
    ),
    Component(
        name="astron-agent",
        port=8080,
        health_path="/health",
        startup_delay=15,
        depends_on=frozenset({"astra-xmod-shim"}),
        environment={"DB_TYPE": "postgres"},
    ),
    Component(
        name="astron-rpa",
        port=8081,
        health_path="/",
        startup_delay=20,
        depends_on=frozenset({"astron-agent"}),
    ),
)


class ComponentRegistry:
    """Ordered, immutable set of components.

    Order defines dependency precedence for sequential runs: earlier entries
    must become healthy before later ones start.
    """

    def __init__(self, components: Sequence[Component]):
        """Initialize and validate the registry.

        Args:
            components: Components in dependency order

        Raises:
            ConfigurationError: If the registry is empty or inconsistent
        """
        self._components: Tuple[Component, ...] = tuple(components)
        self._by_name: Dict[str, Component] = {}
        self._validate()

    @classmethod
    def default(cls) -> "ComponentRegistry":
        """Registry of the built-in astra stack."""
        return cls(DEFAULT_COMPONENTS)

    def _validate(self) -> None:
        if not self._components:
            raise ConfigurationError("Component registry is empty")

        ports: Dict[Tuple[str, int], str] = {}
        for component in self._components:
            if component.name in self._by_name:
                raise ConfigurationError(
                    f"Duplicate component name: {component.name}",
                    context=ErrorContext(component=component.name)
                )
            self._by_name[component.name] = component

            key = (component.host, component.port)
            if key in ports:
                raise ConfigurationError(
                    f"Port collision: '{component.name}' and '{ports[key]}' "
                    f"both listen on {component.host}:{component.port}",
                    context=ErrorContext(component=component.name),
                    suggestions=["Give each component a distinct port"]
                )
            ports[key] = component.name

        DependencyGraph.from_components(list(self._components)).validate()

        logger.debug(f"Registry validated: {', '.join(self.names())}")

    def list(self) -> Tuple[Component, ...]:
        """Components in dependency order."""
        return self._components

    def names(self) -> List[str]:
        """Component names in dependency order."""
        return [component.name for component in self._components]

    def get(self, name: str) -> Optional[Component]:
        """Get a component by name."""
        return self._by_name.get(name)

    def __iter__(self) -> Iterator[Component]:
        return iter(self._components)

    def __len__(self) -> int:
        return len(self._components)
