"""FastAPI application for the Pulse-Ledger dashboard."""
