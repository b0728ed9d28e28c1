"""Compliance Agent - tenant-scoped compliance data service."""

__version__ = "0.1.0"
