"""Jurisly: backend for an AI legal assistant chat."""

__version__ = "1.0.0"
