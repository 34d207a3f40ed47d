"""Sentinel-1 flood / non-flood sample point extraction."""

__version__ = "0.1.0"
