"""
ChatNav - Chat Intent Resolution Engine
=======================================

Turns free-form chat input inside an embedded assistant into a single,
safe, deterministic action: navigate, open a panel, select an option or
answer from context.

Core Components:
- Command vocabulary built from core commands, visible panels and manifests
- Deterministic matchers (ordinals, scope cues, explicit commands, fuzzy typos)
- Selection arbitration with a focused-widget latch
- Deterministic to constrained-LLM ladder over bounded candidate sets
- Tiered, short-circuiting router
"""

__version__ = "0.1.0"
__author__ = "ChatNav Project"

from .core.engine import ChatNavEngine
from .core.config import Config
from .core.exceptions import ChatNavError

__all__ = [
    'ChatNavEngine',
    'Config',
    'ChatNavError'
]
