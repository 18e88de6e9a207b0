"""Packet filters for a UDP proxy, with their configuration and a registry to create them by name."""

__version__ = "0.1.0"