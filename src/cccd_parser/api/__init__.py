"""HTTP API for the CCCD parser."""

from .main import create_app, get_pipeline

__all__ = ["create_app", "get_pipeline"]
