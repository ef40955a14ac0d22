"""
Per-conversation session state.

Holds at most one live executable context at a time: either chat pending
options or a focused-widget latch. Every registration goes through
_replace_executable_context so the two can never coexist.
"""

import copy
import uuid
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Set

from ..core.types import Candidate, ExecutableContext
from ..core.exceptions import SessionError

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 50


@dataclass
class PendingOptions:
    """Options shown in chat that the next input may select from"""
    candidates: List[Candidate]
    source_message_id: Optional[str]
    created_at: float
    option_set_id: str

    @property
    def labels(self) -> List[str]:
        return [c.label for c in self.candidates]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'candidates': [c.to_dict() for c in self.candidates],
            'source_message_id': self.source_message_id,
            'created_at': self.created_at,
            'option_set_id': self.option_set_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PendingOptions':
        return cls(
            candidates=[Candidate.from_dict(c) for c in data['candidates']],
            source_message_id=data.get('source_message_id'),
            created_at=data['created_at'],
            option_set_id=data['option_set_id']
        )


@dataclass
class WidgetLatch:
    """Focused widget whose items bare ordinals resolve against"""
    widget_id: str
    title: str
    candidates: List[Candidate]
    engaged_at: float
    last_used_at: float

    @property
    def labels(self) -> List[str]:
        return [c.label for c in self.candidates]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'widget_id': self.widget_id,
            'title': self.title,
            'candidates': [c.to_dict() for c in self.candidates],
            'engaged_at': self.engaged_at,
            'last_used_at': self.last_used_at
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WidgetLatch':
        return cls(
            widget_id=data['widget_id'],
            title=data['title'],
            candidates=[Candidate.from_dict(c) for c in data['candidates']],
            engaged_at=data['engaged_at'],
            last_used_at=data.get('last_used_at', data['engaged_at'])
        )


@dataclass
class LastSuggestion:
    candidates: List[Candidate]
    message_id: Optional[str] = None

    @property
    def labels(self) -> List[str]:
        return [c.label for c in self.candidates]


@dataclass
class ClarificationState:
    """An open clarification question"""
    active_option_set_id: Optional[str]
    question: str
    turns_open: int = 0
    pending_ordinal: Optional[str] = None  # ordinal awaiting a "which source" answer

    def to_dict(self) -> Dict[str, Any]:
        return {
            'active_option_set_id': self.active_option_set_id,
            'question': self.question,
            'turns_open': self.turns_open,
            'pending_ordinal': self.pending_ordinal
        }


@dataclass
class PausedSnapshot:
    """Option list set aside by an interrupting command or a stop"""
    options: List[Candidate]
    question: str
    paused_at: float
    reason: str  # interrupt | stop

    def to_dict(self) -> Dict[str, Any]:
        return {
            'options': [c.to_dict() for c in self.options],
            'question': self.question,
            'paused_at': self.paused_at,
            'reason': self.reason
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PausedSnapshot':
        return cls(
            options=[Candidate.from_dict(c) for c in data['options']],
            question=data.get('question', ''),
            paused_at=data['paused_at'],
            reason=data.get('reason', 'interrupt')
        )


@dataclass
class HistoryEntry:
    """Request or action history record"""
    type: str
    target_type: str
    target_name: str
    target_id: Optional[str]
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'target_type': self.target_type,
            'target_name': self.target_name,
            'target_id': self.target_id,
            'timestamp': self.timestamp
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HistoryEntry':
        return cls(
            type=data['type'],
            target_type=data['target_type'],
            target_name=data['target_name'],
            target_id=data.get('target_id'),
            timestamp=data['timestamp']
        )


@dataclass
class SessionState:
    """Selection and history state of one conversation"""
    conversation_id: str
    turn_id: int = 0
    executable_context: ExecutableContext = ExecutableContext.NONE
    pending_options: Optional[PendingOptions] = None
    widget_latch: Optional[WidgetLatch] = None
    clarification: Optional[ClarificationState] = None
    paused_snapshot: Optional[PausedSnapshot] = None
    request_history: List[HistoryEntry] = field(default_factory=list)
    action_history: List[HistoryEntry] = field(default_factory=list)
    last_turn_at: Optional[float] = None
    max_history: int = DEFAULT_MAX_HISTORY

    # Ephemeral, never persisted
    last_suggestion: Optional[LastSuggestion] = None
    rejected_suggestions: Set[str] = field(default_factory=set)

    # ------------------------------------------------------------------
    # Executable context

    def _replace_executable_context(self, kind: ExecutableContext) -> None:
        """Clear every competing selection context before installing `kind`"""
        if self.executable_context != kind and self.executable_context != ExecutableContext.NONE:
            logger.debug(f"{self.conversation_id}: replacing {self.executable_context.value} with {kind.value}")
        self.pending_options = None
        self.widget_latch = None
        self.clarification = None
        self.executable_context = kind

    def register_chat_options(self, candidates: List[Candidate], now: float,
                              question: Optional[str] = None,
                              source_message_id: Optional[str] = None) -> PendingOptions:
        """Make a freshly shown option list the executable context"""
        self._replace_executable_context(ExecutableContext.CHAT_OPTIONS)
        self.pending_options = PendingOptions(
            candidates=list(candidates),
            source_message_id=source_message_id,
            created_at=now,
            option_set_id=uuid.uuid4().hex[:12]
        )
        if question:
            self.clarification = ClarificationState(
                active_option_set_id=self.pending_options.option_set_id,
                question=question
            )
        return self.pending_options

    def engage_widget_latch(self, widget_id: str, title: str,
                            candidates: List[Candidate], now: float) -> WidgetLatch:
        """Latch bare selections onto a focused widget"""
        if self.widget_latch and self.widget_latch.widget_id == widget_id:
            self.widget_latch.candidates = list(candidates)
            self.widget_latch.last_used_at = now
            return self.widget_latch

        self._replace_executable_context(ExecutableContext.FOCUSED_WIDGET)
        self.widget_latch = WidgetLatch(
            widget_id=widget_id,
            title=title,
            candidates=list(candidates),
            engaged_at=now,
            last_used_at=now
        )
        logger.debug(f"{self.conversation_id}: latched widget {widget_id}")
        return self.widget_latch

    def clear_executable_context(self) -> None:
        self._replace_executable_context(ExecutableContext.NONE)

    def exit_widget_latch(self) -> None:
        if self.widget_latch is not None:
            logger.debug(f"{self.conversation_id}: latch on {self.widget_latch.widget_id} exited")
            self.clear_executable_context()

    def clear_pending_options(self) -> None:
        if self.pending_options is not None:
            self.clear_executable_context()

    def live_contexts(self) -> int:
        """Number of live executable contexts; never more than one"""
        return int(self.pending_options is not None) + int(self.widget_latch is not None)

    def expire(self, now: float, grace_seconds: float, latch_ttl_seconds: float = 0,
               visible_widget_ids: Optional[Set[str]] = None) -> None:
        """Drop pending options past their grace window and latches that no longer apply"""
        if self.pending_options and now - self.pending_options.created_at > grace_seconds:
            logger.debug(f"{self.conversation_id}: pending options expired")
            self.clear_executable_context()

        if self.widget_latch:
            if visible_widget_ids is not None and self.widget_latch.widget_id not in visible_widget_ids:
                logger.debug(f"{self.conversation_id}: latched widget closed")
                self.clear_executable_context()
            elif latch_ttl_seconds and now - self.widget_latch.last_used_at > latch_ttl_seconds:
                logger.debug(f"{self.conversation_id}: latch idle timeout")
                self.clear_executable_context()

    # ------------------------------------------------------------------
    # Clarification and pause/resume

    def clear_clarification(self) -> None:
        self.clarification = None

    def pause(self, now: float, reason: str) -> Optional[PausedSnapshot]:
        """Set the active option list aside so a return phrase can restore it"""
        if self.pending_options is None:
            return None
        question = self.clarification.question if self.clarification else ''
        self.paused_snapshot = PausedSnapshot(
            options=list(self.pending_options.candidates),
            question=question,
            paused_at=now,
            reason=reason
        )
        self.clear_executable_context()
        return self.paused_snapshot

    def resume(self, now: float) -> Optional[PendingOptions]:
        snapshot = self.paused_snapshot
        if snapshot is None:
            return None
        self.paused_snapshot = None
        return self.register_chat_options(snapshot.options, now, question=snapshot.question or None)

    # ------------------------------------------------------------------
    # Suggestions

    def set_suggestion(self, candidates: List[Candidate], message_id: Optional[str] = None) -> None:
        self.last_suggestion = LastSuggestion(list(candidates), message_id)

    def reject_suggestion(self) -> List[str]:
        """Record the live suggestion as rejected and clear it with any pending options"""
        if self.last_suggestion is None:
            return []
        labels = self.last_suggestion.labels
        self.rejected_suggestions.update(label.casefold() for label in labels)
        self.last_suggestion = None
        self.clear_pending_options()
        return labels

    def clear_rejections(self) -> None:
        self.rejected_suggestions.clear()

    # ------------------------------------------------------------------
    # History

    def _push(self, history: List[HistoryEntry], entry: HistoryEntry) -> None:
        history.insert(0, entry)
        del history[self.max_history:]

    def record_request(self, entry: HistoryEntry) -> None:
        self._push(self.request_history, entry)

    def record_action(self, entry: HistoryEntry) -> None:
        self._push(self.action_history, entry)

    # ------------------------------------------------------------------

    def copy(self) -> 'SessionState':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Durable fields only; the suggestion and rejected set stay in-process"""
        return {
            'conversation_id': self.conversation_id,
            'turn_id': self.turn_id,
            'executable_context': self.executable_context.value,
            'pending_options': self.pending_options.to_dict() if self.pending_options else None,
            'widget_latch': self.widget_latch.to_dict() if self.widget_latch else None,
            'clarification': self.clarification.to_dict() if self.clarification else None,
            'paused_snapshot': self.paused_snapshot.to_dict() if self.paused_snapshot else None,
            'request_history': [e.to_dict() for e in self.request_history],
            'action_history': [e.to_dict() for e in self.action_history],
            'last_turn_at': self.last_turn_at,
            'max_history': self.max_history
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionState':
        try:
            clarification = data.get('clarification')
            state = cls(
                conversation_id=data['conversation_id'],
                turn_id=data.get('turn_id', 0),
                executable_context=ExecutableContext(data.get('executable_context', 'none')),
                pending_options=PendingOptions.from_dict(data['pending_options']) if data.get('pending_options') else None,
                widget_latch=WidgetLatch.from_dict(data['widget_latch']) if data.get('widget_latch') else None,
                clarification=ClarificationState(**clarification) if clarification else None,
                paused_snapshot=PausedSnapshot.from_dict(data['paused_snapshot']) if data.get('paused_snapshot') else None,
                request_history=[HistoryEntry.from_dict(e) for e in data.get('request_history', [])],
                action_history=[HistoryEntry.from_dict(e) for e in data.get('action_history', [])],
                last_turn_at=data.get('last_turn_at'),
                max_history=data.get('max_history', DEFAULT_MAX_HISTORY)
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SessionError(f"Corrupt session state: {e}")

        if state.live_contexts() > 1:
            raise SessionError(f"Session {state.conversation_id} holds two executable contexts")
        return state
