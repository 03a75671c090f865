"""Deployment orchestrator for the astra service stack."""

__version__ = "0.1.0"
