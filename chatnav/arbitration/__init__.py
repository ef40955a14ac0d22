"""
Selection arbitration and the constrained ladder
"""

from .latch import SelectionArbiter
from .ladder import ConstrainedLadder, validate_choice

__all__ = [
    'SelectionArbiter',
    'ConstrainedLadder',
    'validate_choice'
]
