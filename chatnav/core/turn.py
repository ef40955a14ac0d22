"""
Per-turn input bundle handed to every tier
"""

from dataclasses import dataclass, field
from typing import List, Optional, Callable

from .config import Config
from ..session.state import SessionState
from ..session.context import ChatContext, UIContext
from ..vocabulary.builder import CommandDef
from ..bridge.constrained import BridgeCall, BridgeRequest
from ..retrieval.app_data import AppDataStore


@dataclass
class TurnInput:
    """
    Snapshot of everything a tier may read.

    `state` is the router's working copy; tiers never mutate it directly
    but return mutations instead.
    """
    text: str
    state: SessionState
    chat: ChatContext
    ui: UIContext
    vocabulary: List[CommandDef]
    now: float
    config: Config
    bridge: BridgeCall
    app_store: Optional[AppDataStore] = None
    user_id: Optional[str] = None
    expand_chat: Optional[Callable[[], ChatContext]] = None
    known_nouns: List[str] = field(default_factory=list)

    def bridge_request(self, candidates=None, chat: Optional[ChatContext] = None,
                       expanded: bool = False) -> BridgeRequest:
        return BridgeRequest(
            user_message=self.text,
            chat_context=(chat or self.chat).to_dict(),
            ui_context=self.ui.to_dict(),
            bounded_candidates=list(candidates or []),
            allowed_targets=[{'id': c.panel_id or c.intent_name, 'label': c.label}
                             for c in self.vocabulary if not c.is_informational],
            expanded=expanded
        )
