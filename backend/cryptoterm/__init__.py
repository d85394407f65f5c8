"""Crypto intelligence terminal backend."""

__version__ = "1.0.0"
