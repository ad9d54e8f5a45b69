"""
API routers package
"""
from edge_analytics.api import (
    system,
    tracking,
    stats,
    qr,
    admin
)

__all__ = [
    "system",
    "tracking",
    "stats",
    "qr",
    "admin"
]
