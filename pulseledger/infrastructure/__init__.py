"""Infrastructure layer for Pulse-Ledger: configuration, settings and logging."""
