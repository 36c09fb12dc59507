"""Conversion between proxy share links, Clash.Meta YAML and Xray JSON configurations, with geo data and network helpers."""

__version__ = "0.1.0"