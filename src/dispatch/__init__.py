"""Delivery dispatch backend: route quoting, machine assignment and tracking."""

__version__ = "0.1.0"
