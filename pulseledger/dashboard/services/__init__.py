"""Dashboard services: record fetching, snapshot computation and the write path."""
