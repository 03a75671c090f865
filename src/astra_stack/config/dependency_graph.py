"""Dependency graph over stack components."""

from typing import Dict, List, Optional, Set
from dataclasses import dataclass

from astra_stack.config.models import Component
from astra_stack.utils.errors import ConfigurationError, ErrorContext


@dataclass
class DependencyNode:
    """Node in the dependency graph."""

    name: str
    component: Component
    position: int  # Index in the registry
    dependencies: Set[str]  # Components this node depends on


class DependencyGraph:
    """Directed acyclic graph (DAG) of component dependencies."""

    def __init__(self):
        """Initialize empty dependency graph."""
        self.nodes: Dict[str, DependencyNode] = {}

    @classmethod
    def from_components(cls, components: List[Component]) -> "DependencyGraph":
        """Build a graph from components in registry order."""
        graph = cls()
        for component in components:
            graph.add_component(component)
        return graph

    def add_component(self, component: Component) -> None:
        """Add a component to the dependency graph.

        Args:
            component: Component to add to the graph
        """
        dependencies = set(component.depends_on)
        self.nodes[component.name] = DependencyNode(
            name=component.name,
            component=component,
            position=len(self.nodes),
            dependencies=dependencies
        )

    def get_dependencies(self, name: str) -> Set[str]:
        """Get direct dependencies of a component."""
        if name not in self.nodes:
            return set()
        return self.nodes[name].dependencies.copy()

    def detect_circular_dependencies(self) -> Optional[List[str]]:
        """Find one dependency cycle.

        Returns:
            Component names along the cycle, first and last equal
            (e.g. ``['a', 'c', 'b', 'a']``), or None when the graph is acyclic
        """
        finished: Set[str] = set()

        for start in self.nodes:
            if start in finished:
                continue
            # Each frame is (component, its unvisited dependencies)
            path = [start]
            frames = [(start, sorted(self.get_dependencies(start) & self.nodes.keys()))]
            while frames:
                name, remaining = frames[-1]
                if not remaining:
                    frames.pop()
                    path.pop()
                    finished.add(name)
                    continue
                dep_name = remaining.pop(0)
                if dep_name in path:
                    return path[path.index(dep_name):] + [dep_name]
                if dep_name not in finished:
                    path.append(dep_name)
                    frames.append((dep_name, sorted(self.get_dependencies(dep_name) & self.nodes.keys())))

        return None

    def validate(self) -> None:
        """Validate the dependency graph.

        Raises:
            ConfigurationError: On self, unknown, forward or circular dependencies
        """
        for name, node in self.nodes.items():
            for dep_name in sorted(node.dependencies):
                if dep_name == name:
                    raise ConfigurationError(
                        f"Component '{name}' depends on itself",
                        context=ErrorContext(component=name)
                    )
                if dep_name not in self.nodes:
                    raise ConfigurationError(
                        f"Component '{name}' depends on '{dep_name}' which does not exist",
                        context=ErrorContext(component=name)
                    )

        cycle = self.detect_circular_dependencies()
        if cycle:
            raise ConfigurationError(
                f"Circular dependency detected: {' -> '.join(cycle)}",
                context=ErrorContext(component=cycle[0])
            )

        # Registry order is the sequential start order, so it must respect dependencies
        for name, node in self.nodes.items():
            for dep_name in sorted(node.dependencies):
                if self.nodes[dep_name].position > node.position:
                    raise ConfigurationError(
                        f"Component '{name}' depends on '{dep_name}' which is declared later",
                        context=ErrorContext(component=name),
                        suggestions=[f"Move '{dep_name}' before '{name}' in the registry"]
                    )

    def get_deployment_waves(self) -> List[List[str]]:
        """Group components into dependency waves.

        A component's wave is the length of its longest dependency chain, so
        nothing in a wave depends on anything in the same or a later wave.
        Each wave keeps registry order.

        Raises:
            ConfigurationError: If graph is invalid
        """
        self.validate()

        depth: Dict[str, int] = {}
        # Registry order already lists dependencies before their dependents
        for node in sorted(self.nodes.values(), key=lambda n: n.position):
            depth[node.name] = 1 + max((depth[dep] for dep in node.dependencies), default=-1)

        waves: List[List[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for node in sorted(self.nodes.values(), key=lambda n: n.position):
            waves[depth[node.name]].append(node.name)
        return waves

    def get_stop_order(self) -> List[str]:
        """Component names in stop order (dependents before dependencies)."""
        self.validate()
        ordered = sorted(self.nodes.values(), key=lambda node: node.position)
        return [node.name for node in reversed(ordered)]
