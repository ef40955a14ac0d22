"""
Tiered routing
"""

from .router import TieredRouter, TIER_ORDER

__all__ = [
    'TieredRouter',
    'TIER_ORDER'
]
