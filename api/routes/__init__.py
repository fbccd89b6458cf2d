"""API Routes Package."""

from api.routes import health, work_orders

__all__ = [
    "health",
    "work_orders",
]
