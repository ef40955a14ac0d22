"""
Reply generation
"""

from . import responses

__all__ = [
    'responses'
]
