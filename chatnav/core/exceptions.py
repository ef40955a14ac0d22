"""
Custom exceptions for the ChatNav engine
"""

class ChatNavError(Exception):
    """Base exception for ChatNav"""
    pass

class ConfigurationError(ChatNavError):
    """Configuration-related errors"""
    pass

class ConnectionError(ChatNavError):
    """LLM service connection errors"""
    pass

class SessionError(ChatNavError):
    """Session state load/save errors"""
    pass

class ManifestError(ChatNavError):
    """Malformed or incompatible panel manifest"""
    pass

class BridgeError(ChatNavError):
    """Constrained LLM bridge failed or returned an unusable response"""
    pass

class BridgeTimeout(BridgeError):
    """Constrained LLM bridge did not answer within its deadline"""
    pass

class BridgeHallucination(BridgeError):
    """Bridge selected an id outside the bounded candidate set"""

    def __init__(self, choice_id, allowed_ids):
        self.choice_id = choice_id
        self.allowed_ids = list(allowed_ids)
        super().__init__(f"choice id {choice_id!r} not in bounded set {self.allowed_ids}")

class TurnCancelled(ChatNavError):
    """The turn was superseded (stop/cancel) while a bridge call was outstanding"""
    pass
