"""Sighting lifecycle and trust-escalation backend."""

__version__ = "1.0.0"
