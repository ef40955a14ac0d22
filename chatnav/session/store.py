"""
Session persistence behind a narrow get/set interface
"""

import re
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from .state import SessionState
from ..core.exceptions import SessionError

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Keyed by conversation id"""

    @abstractmethod
    def get(self, conversation_id: str) -> Optional[SessionState]:
        pass

    @abstractmethod
    def set(self, state: SessionState) -> None:
        pass

    def get_or_create(self, conversation_id: str, max_history: int = 50) -> SessionState:
        state = self.get(conversation_id)
        if state is None:
            state = SessionState(conversation_id=conversation_id, max_history=max_history)
            logger.info(f"Started new session: {conversation_id}")
        return state


class InMemorySessionStore(SessionStore):
    """Process-local store; keeps full state including ephemeral fields"""

    def __init__(self):
        self._sessions: Dict[str, SessionState] = {}

    def get(self, conversation_id: str) -> Optional[SessionState]:
        state = self._sessions.get(conversation_id)
        return state.copy() if state else None

    def set(self, state: SessionState) -> None:
        self._sessions[state.conversation_id] = state.copy()


class JsonFileSessionStore(SessionStore):
    """
    One JSON file per conversation.

    Only durable fields reach disk. An in-process cache keeps the
    ephemeral suggestion state alive for the lifetime of the process.
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._cache: Dict[str, SessionState] = {}

    def _path(self, conversation_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", '_', conversation_id)
        return self.directory / f"{safe}.json"

    def get(self, conversation_id: str) -> Optional[SessionState]:
        if conversation_id in self._cache:
            return self._cache[conversation_id].copy()

        path = self._path(conversation_id)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            raise SessionError(f"Failed to load session {conversation_id}: {e}")

        state = SessionState.from_dict(data)
        self._cache[conversation_id] = state
        logger.debug(f"Loaded session {conversation_id} from {path}")
        return state.copy()

    def set(self, state: SessionState) -> None:
        path = self._path(state.conversation_id)
        try:
            path.write_text(json.dumps(state.to_dict(), ensure_ascii=False, indent=2), encoding='utf-8')
        except OSError as e:
            raise SessionError(f"Failed to save session {state.conversation_id}: {e}")
        self._cache[state.conversation_id] = state.copy()
