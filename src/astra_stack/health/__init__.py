"""Component health probing."""

from .prober import HealthProber, HealthStatus, ProbeResult, ProbeStatus

__all__ = [
    "HealthProber",
    "HealthStatus",
    "ProbeResult",
    "ProbeStatus",
]
