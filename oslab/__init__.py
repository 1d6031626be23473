"""Tracker-based peer-to-peer file sharing, with thread, queue and socket utilities."""

__version__ = "0.1.0"