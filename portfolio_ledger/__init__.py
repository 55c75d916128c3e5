"""Personal investment portfolio ledger with cached, recomputed aggregates."""

__version__ = "0.1.0"
