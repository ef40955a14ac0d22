"""
Constrained LLM bridge
"""

from .constrained import (
    LLMBridge, OllamaBridge, NullBridge, DeadlineRunner, BridgeCall,
    BridgeRequest, BridgeDecision, IntentResult, parse_decision, parse_intent
)

__all__ = [
    'LLMBridge',
    'OllamaBridge',
    'NullBridge',
    'DeadlineRunner',
    'BridgeCall',
    'BridgeRequest',
    'BridgeDecision',
    'IntentResult',
    'parse_decision',
    'parse_intent'
]
