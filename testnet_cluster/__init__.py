"""Ephemeral multi-node validator test clusters on Kubernetes."""

__version__ = "0.1.0"
