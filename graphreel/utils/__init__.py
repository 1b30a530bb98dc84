"""Utility helpers for graphreel."""

from .logging import configure_logging, parse_level

__all__ = ["configure_logging", "parse_level"]
