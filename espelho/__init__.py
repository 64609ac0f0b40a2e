"""Espelho Meu - virtual try-on generation backend."""

__version__ = "0.3.0"
