"""Lightweight network monitoring: an SSH poller and a time-series report database."""

__version__ = "0.1.0"