"""Collabhub collaboration backend: project chat over WebSockets."""

__version__ = "1.0.0"
