"""
Session state, persistence and per-turn context bundles
"""

from .state import SessionState, PendingOptions, WidgetLatch, HistoryEntry
from .store import SessionStore, InMemorySessionStore, JsonFileSessionStore
from .context import (
    ChatMessage, ChatContext, UIContext, WidgetSummary, ListPreview,
    TranscriptStore, InMemoryTranscript, build_chat_context, build_ui_context
)

__all__ = [
    'SessionState',
    'PendingOptions',
    'WidgetLatch',
    'HistoryEntry',
    'SessionStore',
    'InMemorySessionStore',
    'JsonFileSessionStore',
    'ChatMessage',
    'ChatContext',
    'UIContext',
    'WidgetSummary',
    'ListPreview',
    'TranscriptStore',
    'InMemoryTranscript',
    'build_chat_context',
    'build_ui_context'
]
