"""
Shared types for turn resolution: actions, candidates and resolutions
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Any, Callable, Tuple


class ActionKind(Enum):
    """Closed set of action variants the executor understands"""
    NAVIGATE = "navigate"
    OPEN_PANEL = "open_panel"
    ANSWER_FROM_CONTEXT = "answer_from_context"
    GENERAL_ANSWER = "general_answer"
    RETRIEVE_FROM_APP = "retrieve_from_app"
    UNSUPPORTED = "unsupported"


class ErrorKind(Enum):
    """Error taxonomy carried on resolutions that end in a clarifier"""
    INPUT_AMBIGUOUS = "InputAmbiguous"
    INPUT_UNRECOGNIZED = "InputUnrecognized"
    CONTEXT_STALE = "ContextStale"
    BRIDGE_TIMEOUT = "BridgeTimeout"
    BRIDGE_ERROR = "BridgeError"


class ExecutableContext(Enum):
    """Which selection context, if any, input may execute against"""
    NONE = "none"
    CHAT_OPTIONS = "chat_options"
    FOCUSED_WIDGET = "focused_widget"


@dataclass(frozen=True)
class Action:
    """A validated action handed to the executor"""
    kind: ActionKind
    target_id: Optional[str] = None
    target_name: Optional[str] = None
    params: Tuple[Tuple[str, Any], ...] = ()
    text: Optional[str] = None

    def param(self, key: str, default: Any = None) -> Any:
        for name, value in self.params:
            if name == key:
                return value
        return default

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'target_id': self.target_id,
            'target_name': self.target_name,
            'params': dict(self.params),
            'text': self.text
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Action':
        return cls(
            kind=ActionKind(data['kind']),
            target_id=data.get('target_id'),
            target_name=data.get('target_name'),
            params=tuple((data.get('params') or {}).items()),
            text=data.get('text')
        )


@dataclass(frozen=True)
class Candidate:
    """One selectable option shown to the user"""
    id: str
    label: str
    action_ref: Action
    sublabel: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'sublabel': self.sublabel,
            'action_ref': self.action_ref.to_dict()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Candidate':
        return cls(
            id=data['id'],
            label=data['label'],
            sublabel=data.get('sublabel'),
            action_ref=Action.from_dict(data['action_ref'])
        )


# Called as mutation(state, now) on the router's working copy of session state
Mutation = Callable[[Any, float], None]


@dataclass
class TierResult:
    """
    Outcome of a single tier.

    handled=False is a pass-through; its mutations are carried forward and
    applied only if a later tier resolves the turn.
    """
    handled: bool
    tier: str = ""
    message: Optional[str] = None
    action: Optional[Action] = None
    options: List[Candidate] = field(default_factory=list)
    mutations: List[Mutation] = field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    # Set when the turn was a request (what the user asked for)
    request: Optional[Dict[str, Any]] = None
    # Rejected suggestions are forgotten once this action executes successfully
    clears_rejections: bool = False

    @classmethod
    def pass_through(cls, tier: str = "", mutations: Optional[List[Mutation]] = None) -> 'TierResult':
        return cls(handled=False, tier=tier, mutations=list(mutations or []))


@dataclass
class EngineResponse:
    """What the host renders after a turn"""
    conversation_id: str
    message: str
    tier: str
    action: Optional[Action] = None
    options: List[Candidate] = field(default_factory=list)
    executed: bool = False
    error_kind: Optional[ErrorKind] = None
    turn_id: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'conversation_id': self.conversation_id,
            'message': self.message,
            'tier': self.tier,
            'action': self.action.to_dict() if self.action else None,
            'options': [c.to_dict() for c in self.options],
            'executed': self.executed,
            'error_kind': self.error_kind.value if self.error_kind else None,
            'turn_id': self.turn_id
        }
