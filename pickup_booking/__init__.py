"""Waste-collection pickup appointment booking core."""

__version__ = "0.1.0"
