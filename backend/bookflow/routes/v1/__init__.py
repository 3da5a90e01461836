"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import availability, health, pricing, prometheus, realtime, reservations

__all__ = [
    "availability",
    "health",
    "pricing",
    "prometheus",
    "realtime",
    "reservations",
]
