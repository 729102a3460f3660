"""Inventory and client-billing service: stock, assignments and payback metrics."""

__version__ = "1.0.0"
