"""API Routes Package."""

from api.routes import health, payments, sales

__all__ = [
    "health",
    "payments",
    "sales",
]
