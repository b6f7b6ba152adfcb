"""Git-backed task store and autonomous agent loop."""

__version__ = "0.3.0"
