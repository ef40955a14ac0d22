"""
Core ChatNav components
"""

from .config import Config
from .exceptions import (
    ChatNavError, ConfigurationError, SessionError, ManifestError,
    BridgeError, BridgeTimeout, BridgeHallucination, TurnCancelled
)
from .types import Action, ActionKind, Candidate, ErrorKind, ExecutableContext, TierResult, EngineResponse

__all__ = [
    'Config',
    'ChatNavError',
    'ConfigurationError',
    'SessionError',
    'ManifestError',
    'BridgeError',
    'BridgeTimeout',
    'BridgeHallucination',
    'TurnCancelled',
    'Action',
    'ActionKind',
    'Candidate',
    'ErrorKind',
    'ExecutableContext',
    'TierResult',
    'EngineResponse'
]
