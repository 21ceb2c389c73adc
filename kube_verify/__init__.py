"""Verification commands for Kubernetes clusters: pod readiness, Job results and installs."""

__version__ = "0.1.0"
