"""CineMatch quiz backend: scoring, idempotent result submission and statistics."""

__version__ = "1.0.0"
