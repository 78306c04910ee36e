"""Pulse-Ledger: revenue and operations aggregation for hospital dashboards."""

__version__ = "1.0.0"
