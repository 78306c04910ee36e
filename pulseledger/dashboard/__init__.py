"""Dashboard module for Pulse-Ledger.

This module provides the FastAPI backend that serves hospital revenue and
operations snapshots to the dashboard UI.
"""

__version__ = "1.0.0"
