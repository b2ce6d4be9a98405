"""Assistant request coordination service."""

__version__ = "0.1.0"
