"""Durable SQLite-backed queues with acknowledgement, retries and dead letter support."""

__version__ = "0.1.0"