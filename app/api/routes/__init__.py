"""
API Routes Package
"""
from . import (
    health,
    payments,
    goals,
    users,
)
