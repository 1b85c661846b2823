"""Proxied listing discovery and bounded-retry product harvesting."""

__version__ = "0.1.0"
