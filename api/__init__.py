"""API Package.

FastAPI server for fleet maintenance work orders.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
