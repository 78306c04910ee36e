"""Adapters layer for Pulse-Ledger.

This module contains the adapters that interface with external systems.
Adapters implement the Port interfaces defined in the domain layer and turn
driver rows and driver errors into domain values.
"""
