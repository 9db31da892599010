"""Gatekeeper - code validation and adaptive quality gates."""

__version__ = "0.1.0"
