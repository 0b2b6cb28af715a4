"""
HTTP API — Flask surface over the query façade and mutation coordinator.
"""

from .server import build_ssl_context, create_app

__all__ = ["create_app", "build_ssl_context"]
