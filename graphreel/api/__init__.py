"""HTTP control surface for the timeline resolver."""

from .server import create_app

__all__ = ["create_app"]
