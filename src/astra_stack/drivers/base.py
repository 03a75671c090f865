"""Base driver interface for component deploy/stop/status operations."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from astra_stack.config.models import Component
from astra_stack.health.prober import HealthProber, HealthStatus


@dataclass
class DriverResult:
    """Pass/fail outcome of an external deploy or stop call."""

    component: str
    success: bool
    reason: Optional[str] = None  # Raw backend error text on failure
    exit_code: Optional[int] = None
    duration: float = 0.0  # seconds

    @classmethod
    def ok(cls, component: str, duration: float = 0.0) -> "DriverResult":
        return cls(component=component, success=True, exit_code=0, duration=duration)

    @classmethod
    def failed(
        cls,
        component: str,
        reason: str,
        exit_code: Optional[int] = None,
        duration: float = 0.0
    ) -> "DriverResult":
        return cls(
            component=component,
            success=False,
            reason=reason,
            exit_code=exit_code,
            duration=duration
        )


class BaseDriver(ABC):
    """Base class for all component drivers.

    ``deploy`` is not idempotent at the backend level: calling it twice for
    the same component may create duplicate resources.
    """

    def __init__(self, prober: Optional[HealthProber] = None):
        """Initialize driver.

        Args:
            prober: Prober used to derive component status
        """
        self.prober = prober or HealthProber()

    @abstractmethod
    def deploy(self, component: Component, backend: str) -> DriverResult:
        """Run the external deploy procedure for a component.

        Args:
            component: Component to deploy
            backend: Backend name understood by the component

        Returns:
            DriverResult; on success the component is reachable at its
            declared port and path once it finishes starting
        """
        pass

    @abstractmethod
    def stop(self, component: Component, backend: str) -> DriverResult:
        """Run the external stop procedure for a component.

        Args:
            component: Component to stop
            backend: Backend name understood by the component

        Returns:
            DriverResult
        """
        pass

    def status(self, component: Component, request_timeout: float = 3.0) -> HealthStatus:
        """Current health of a component, from its endpoint rather than process state."""
        return self.prober.check(component.health_url, request_timeout=request_timeout)
