"""Bit-accurate model of a streaming camera image signal processing pipeline."""

__version__ = "0.1.0"