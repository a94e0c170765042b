"""Kubernetes manifest parsing, policy annotation updates, kubectl sync and export saving."""

__version__ = "0.1.0"