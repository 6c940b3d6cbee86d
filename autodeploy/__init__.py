"""Self-hosted deployment automation service."""

__version__ = "2.0.0"
