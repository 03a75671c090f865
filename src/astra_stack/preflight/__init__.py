"""Pre-flight checks run before a deploy."""

from .checks import PreflightChecker, REQUIRED_TOOLS

__all__ = [
    "PreflightChecker",
    "REQUIRED_TOOLS",
]
