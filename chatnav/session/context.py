"""
Context bundles built fresh for every turn: chat context from the transcript
and UI context from the host's snapshot
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Set

from ..core.types import Action, ActionKind, Candidate

logger = logging.getLogger(__name__)


@dataclass
class ListPreview:
    title: str
    items: List[str] = field(default_factory=list)


@dataclass
class ChatMessage:
    """One transcript message"""
    id: str
    role: str  # user | assistant
    content: str
    timestamp: float
    options: List[Candidate] = field(default_factory=list)
    list_preview: Optional[ListPreview] = None
    opened_panel: Optional[str] = None
    is_error: bool = False


@dataclass
class ChatContext:
    """
    Chat-side context. Each field comes from its own reverse scan and has
    its own decay window; plain messages never decay.
    """
    last_assistant_message: Optional[str] = None
    last_user_message: Optional[str] = None
    last_options: Optional[List[Candidate]] = None
    last_list_preview: Optional[ListPreview] = None
    last_opened_panel: Optional[str] = None
    last_error_message: Optional[str] = None
    options_age: Optional[float] = None
    list_preview_age: Optional[float] = None
    opened_panel_age: Optional[float] = None
    is_stale: bool = False

    # Most recent options regardless of decay, for re-show
    latest_options: Optional[List[Candidate]] = None
    latest_options_message_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'last_assistant_message': self.last_assistant_message,
            'last_user_message': self.last_user_message,
            'last_options': [c.label for c in self.last_options] if self.last_options else None,
            'last_list_preview': {
                'title': self.last_list_preview.title,
                'items': list(self.last_list_preview.items)
            } if self.last_list_preview else None,
            'last_opened_panel': self.last_opened_panel,
            'last_error_message': self.last_error_message,
            'is_stale': self.is_stale
        }


def build_chat_context(messages: List[ChatMessage], now: float,
                       decay: Optional[Dict[str, float]] = None) -> ChatContext:
    """
    Build the chat context from transcript messages (oldest first).

    Args:
        messages: Recent transcript window
        now: Current time
        decay: Per-field decay windows in seconds
    """
    decay = decay or {}
    options_window = decay.get('options_seconds', 60)
    preview_window = decay.get('list_preview_seconds', 90)
    panel_window = decay.get('opened_panel_seconds', 180)

    ctx = ChatContext()
    newest_first = list(reversed(messages))

    for msg in newest_first:
        if msg.role == 'assistant':
            ctx.last_assistant_message = msg.content
            break

    for msg in newest_first:
        if msg.role == 'user':
            ctx.last_user_message = msg.content
            break

    for msg in newest_first:
        if msg.role == 'assistant' and msg.is_error:
            ctx.last_error_message = msg.content
            break

    stale = False

    for msg in newest_first:
        if msg.role == 'assistant' and msg.options:
            age = now - msg.timestamp
            ctx.latest_options = list(msg.options)
            ctx.latest_options_message_id = msg.id
            ctx.options_age = age
            if age <= options_window:
                ctx.last_options = list(msg.options)
            else:
                stale = True
            break

    for msg in newest_first:
        if msg.list_preview is not None:
            age = now - msg.timestamp
            ctx.list_preview_age = age
            if age <= preview_window:
                ctx.last_list_preview = msg.list_preview
            else:
                stale = True
            break

    for msg in newest_first:
        if msg.opened_panel:
            age = now - msg.timestamp
            ctx.opened_panel_age = age
            if age <= panel_window:
                ctx.last_opened_panel = msg.opened_panel
            break

    ctx.is_stale = stale
    return ctx


@dataclass
class WidgetSummary:
    """Widget metadata; item labels only, never bodies"""
    id: str
    title: str
    type: str = 'panel'
    item_count: int = 0
    items: List[Candidate] = field(default_factory=list)


@dataclass
class UIContext:
    """Live, undecayed UI metadata"""
    mode: str = 'dashboard'
    visible_widgets: List[WidgetSummary] = field(default_factory=list)
    open_drawer: Optional[str] = None
    open_items: List[str] = field(default_factory=list)
    active_item_id: Optional[str] = None
    focused_widget_id: Optional[str] = None

    def widget(self, widget_id: Optional[str]) -> Optional[WidgetSummary]:
        for widget in self.visible_widgets:
            if widget.id == widget_id:
                return widget
        return None

    @property
    def focused_widget(self) -> Optional[WidgetSummary]:
        return self.widget(self.focused_widget_id)

    @property
    def visible_widget_ids(self) -> Set[str]:
        return {w.id for w in self.visible_widgets}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode,
            'visible_widgets': [
                {'id': w.id, 'title': w.title, 'type': w.type, 'item_count': w.item_count,
                 'items': [c.label for c in w.items]}
                for w in self.visible_widgets
            ],
            'open_drawer': self.open_drawer,
            'open_items': list(self.open_items),
            'active_item_id': self.active_item_id,
            'focused_widget_id': self.focused_widget_id
        }


def _widget_item(widget_id: str, item: Dict[str, Any]) -> Candidate:
    return Candidate(
        id=str(item['id']),
        label=item.get('label') or item.get('title') or str(item['id']),
        sublabel=item.get('sublabel'),
        action_ref=Action(
            kind=ActionKind.NAVIGATE,
            target_id=str(item['id']),
            target_name=item.get('label') or item.get('title'),
            params=(('widget_id', widget_id),)
        )
    )


def build_ui_context(snapshot: Optional[Dict[str, Any]],
                     max_widgets: int = 10, max_open_items: int = 5) -> UIContext:
    """Build a capped UI context from the host's UI snapshot dict"""
    if not snapshot:
        return UIContext()

    widgets = []
    for raw in (snapshot.get('widgets') or [])[:max_widgets]:
        items = [_widget_item(raw['id'], item) for item in raw.get('items') or []]
        widgets.append(WidgetSummary(
            id=raw['id'],
            title=raw.get('title') or raw['id'],
            type=raw.get('type', 'panel'),
            item_count=raw.get('item_count', len(items)),
            items=items
        ))

    focused = snapshot.get('focused_widget_id')
    if focused and focused not in {w.id for w in widgets}:
        logger.debug(f"Focused widget {focused} is not visible; ignoring focus")
        focused = None

    return UIContext(
        mode=snapshot.get('mode', 'dashboard'),
        visible_widgets=widgets,
        open_drawer=snapshot.get('open_drawer'),
        open_items=list(snapshot.get('open_items') or [])[:max_open_items],
        active_item_id=snapshot.get('active_item_id'),
        focused_widget_id=focused
    )


class TranscriptStore(ABC):
    """Conversation history owned by the host"""

    @abstractmethod
    def append(self, conversation_id: str, message: ChatMessage) -> None:
        pass

    @abstractmethod
    def get_recent(self, conversation_id: str, limit: int) -> List[ChatMessage]:
        """Most recent `limit` messages, oldest first"""
        pass


class InMemoryTranscript(TranscriptStore):

    def __init__(self):
        self._messages: Dict[str, List[ChatMessage]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(self, conversation_id: str, message: ChatMessage) -> None:
        with self._lock:
            self._messages[conversation_id].append(message)

    def get_recent(self, conversation_id: str, limit: int) -> List[ChatMessage]:
        with self._lock:
            return list(self._messages[conversation_id][-limit:])
