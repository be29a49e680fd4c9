"""Orchestration driver for the API fuzzing toolchain."""

__version__ = "6.1.0"
