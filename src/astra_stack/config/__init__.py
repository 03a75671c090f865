"""Configuration management for the astra stack orchestrator."""

from .models import Component, DeploymentMode, ExecutionMode, StackSettings
from .dependency_graph import DependencyGraph, DependencyNode
from .registry import ComponentRegistry, DEFAULT_COMPONENTS
from .parser import StackConfig, load_registry, load_settings

__all__ = [
    "Component",
    "DeploymentMode",
    "ExecutionMode",
    "StackSettings",
    "DependencyGraph",
    "DependencyNode",
    "ComponentRegistry",
    "DEFAULT_COMPONENTS",
    "StackConfig",
    "load_registry",
    "load_settings",
]
