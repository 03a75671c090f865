"""Component drivers wrapping the external deploy procedures."""

from .base import BaseDriver, DriverResult
from .script import ScriptDriver
from .dry_run import DryRunDriver

__all__ = [
    "BaseDriver",
    "DriverResult",
    "ScriptDriver",
    "DryRunDriver",
]
