"""Driver that only logs what would happen."""

from astra_stack.config.models import Component
from astra_stack.drivers.base import BaseDriver, DriverResult
from astra_stack.utils.logging import get_logger

logger = get_logger(__name__)


class DryRunDriver(BaseDriver):
    """Replaces every deploy/stop call with a log entry."""

    def deploy(self, component: Component, backend: str) -> DriverResult:
        logger.info(f"[DRY RUN] Would deploy {component.name} (backend: {backend})")
        return DriverResult.ok(component.name)

    def stop(self, component: Component, backend: str) -> DriverResult:
        logger.info(f"[DRY RUN] Would stop {component.name} (backend: {backend})")
        return DriverResult.ok(component.name)
