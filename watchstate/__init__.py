"""Watch-state and rewatch tracking engine."""

__version__ = "0.1.0"
