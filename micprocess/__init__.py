"""Microphone capture through a pluggable audio processing graph."""

__version__ = "0.1.0"
