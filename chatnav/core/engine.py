"""
Main ChatNav engine orchestrator
"""

import time
import uuid
import logging
import threading
from typing import Dict, Any, Optional, List, Callable, Iterable, Union

from .config import Config
from .turn import TurnInput
from .types import ActionKind, EngineResponse
from .exceptions import TurnCancelled
from ..utils.llm_client import LLMClient
from ..bridge.constrained import LLMBridge, OllamaBridge, NullBridge, DeadlineRunner, BridgeCall
from ..executor import ActionExecutor, RecordingExecutor
from ..retrieval.app_data import AppDataStore
from ..session.state import HistoryEntry
from ..session.store import SessionStore, InMemorySessionStore
from ..session.context import (
    ChatMessage, TranscriptStore, InMemoryTranscript, build_chat_context, build_ui_context
)
from ..vocabulary.builder import CORE_VOCABULARY, PanelManifest, build_vocabulary, load_manifests
from ..matching.classifiers import is_stop_phrase
from ..routing.router import TieredRouter
from ..generation import responses

logger = logging.getLogger(__name__)


class ChatNavEngine:
    """
    Main ChatNav orchestrator

    Turns one chat submission into at most one validated action. Inputs
    are serialized per conversation; a stop phrase bumps the conversation
    generation before waiting for the lock so an in-flight bridge call is
    abandoned and its late result discarded.
    """

    def __init__(self, config: Config,
                 bridge: Optional[LLMBridge] = None,
                 executor: Optional[ActionExecutor] = None,
                 session_store: Optional[SessionStore] = None,
                 transcript: Optional[TranscriptStore] = None,
                 app_store: Optional[AppDataStore] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

        self.llm_client: Optional[LLMClient] = None
        if bridge is None:
            if config.get('bridge.enabled', True):
                self.llm_client = LLMClient(config.ollama)
                bridge = OllamaBridge(self.llm_client, config)
                self._validate_connections()
            else:
                bridge = NullBridge()
        self.bridge = bridge

        self.executor = executor or RecordingExecutor()
        self.session_store = session_store or InMemorySessionStore()
        self.transcript = transcript or InMemoryTranscript()
        self.app_store = app_store
        self.clock = clock

        self.router = TieredRouter(config)
        self.runner = DeadlineRunner()
        self.manifests: List[PanelManifest] = []

        self._registry_lock = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._generations: Dict[str, int] = {}

        self.logger.info("ChatNav engine initialized")

    def _validate_connections(self):
        """Warn early when the model service is unreachable; bridge calls then fail closed"""
        if not self.llm_client.test_connection():
            self.logger.warning("Ollama is unreachable; selections will fall back to clarifiers")

    # ------------------------------------------------------------------
    # Concurrency

    def _lock_for(self, conversation_id: str) -> threading.Lock:
        with self._registry_lock:
            if conversation_id not in self._locks:
                self._locks[conversation_id] = threading.Lock()
            return self._locks[conversation_id]

    def _generation(self, conversation_id: str) -> int:
        with self._registry_lock:
            return self._generations.get(conversation_id, 0)

    def cancel(self, conversation_id: str) -> int:
        """Supersede any in-flight turn of this conversation"""
        with self._registry_lock:
            generation = self._generations.get(conversation_id, 0) + 1
            self._generations[conversation_id] = generation
        self.logger.info(f"Conversation {conversation_id} advanced to generation {generation}")
        return generation

    # ------------------------------------------------------------------

    def register_manifests(self, manifests: Iterable[Union[Dict[str, Any], PanelManifest]]) -> int:
        """Install third-party panel manifests; returns how many were accepted"""
        manifests = list(manifests)
        parsed = [m for m in manifests if isinstance(m, PanelManifest)]
        parsed += load_manifests(m for m in manifests if isinstance(m, dict))
        self.manifests = parsed
        self.logger.info(f"Registered {len(parsed)} panel manifest(s)")
        return len(parsed)

    def get_state(self, conversation_id: str):
        return self.session_store.get(conversation_id)

    def handle(self, conversation_id: str, text: str,
               ui_snapshot: Optional[Dict[str, Any]] = None,
               user_id: Optional[str] = None) -> EngineResponse:
        """
        Process one user submission.

        Args:
            conversation_id: Conversation key
            text: Raw user input
            ui_snapshot: Host UI metadata (widgets, drawer, focus)
            user_id: Used to scope app-data lookups

        Returns:
            EngineResponse with the reply, the executed action and any options
        """
        if is_stop_phrase(text):
            self.cancel(conversation_id)

        with self._lock_for(conversation_id):
            generation = self._generation(conversation_id)
            try:
                return self._process(conversation_id, text, ui_snapshot, user_id, generation)
            except TurnCancelled as e:
                self.logger.info(f"Turn in {conversation_id} discarded: {e}")
                return EngineResponse(conversation_id, message='', tier='cancelled')
            except Exception as e:
                self.logger.error(f"Turn in {conversation_id} failed: {e}", exc_info=True)
                return EngineResponse(conversation_id, message=responses.NOT_UNDERSTOOD, tier='error')

    def _process(self, conversation_id: str, text: str, ui_snapshot: Optional[Dict[str, Any]],
                 user_id: Optional[str], generation: int) -> EngineResponse:
        start_time = time.time()
        now = self.clock()

        state = self.session_store.get_or_create(conversation_id, self.config.get('history.max_entries', 50))
        ui = build_ui_context(ui_snapshot,
                              self.config.get('ui.max_visible_widgets', 10),
                              self.config.get('ui.max_open_items', 5))
        state.expire(now,
                     self.config.get('selection.pending_grace_seconds', 60),
                     self.config.get('selection.latch_idle_ttl_seconds', 0),
                     ui.visible_widget_ids if ui_snapshot is not None else None)
        state.turn_id += 1
        if state.clarification is not None:
            state.clarification.turns_open += 1

        decay = self.config.decay
        messages = self.transcript.get_recent(conversation_id, self.config.get('context.message_window', 20))
        chat = build_chat_context(messages, now, decay)
        vocabulary = build_vocabulary(CORE_VOCABULARY, ui.visible_widgets, self.manifests)

        user_message = ChatMessage(id=uuid.uuid4().hex, role='user', content=text, timestamp=now)
        self.transcript.append(conversation_id, user_message)

        def expand_chat():
            window = self.config.get('context.expanded_window', 60)
            expanded = [m for m in self.transcript.get_recent(conversation_id, window + 1)
                        if m.id != user_message.id]
            return build_chat_context(expanded[-window:], now, decay)

        def is_cancelled():
            return self._generation(conversation_id) != generation

        turn = TurnInput(
            text=text,
            state=state,
            chat=chat,
            ui=ui,
            vocabulary=vocabulary,
            now=now,
            config=self.config,
            bridge=BridgeCall(self.bridge, self.runner, self.config.get('bridge.timeout_seconds', 2.0), is_cancelled),
            app_store=self.app_store,
            user_id=user_id,
            expand_chat=expand_chat,
            known_nouns=[c.label.lower() for c in vocabulary]
        )

        result, new_state = self.router.route(turn)

        if is_cancelled():
            raise TurnCancelled("turn superseded before commit")

        if result.request:
            new_state.record_request(HistoryEntry(
                type=result.request['type'],
                target_type=result.request['target_type'],
                target_name=result.request['target_name'],
                target_id=result.request.get('target_id'),
                timestamp=now
            ))

        message = result.message or ''
        executed = False
        opened_panel = None
        if result.action is not None:
            outcome = self.executor.execute(result.action)
            if outcome.success:
                executed = True
                if result.clears_rejections:
                    new_state.clear_rejections()
                if result.action.kind in (ActionKind.NAVIGATE, ActionKind.OPEN_PANEL):
                    new_state.record_action(HistoryEntry(
                        type='open',
                        target_type=result.action.kind.value,
                        target_name=result.action.target_name or result.action.target_id or '',
                        target_id=result.action.target_id,
                        timestamp=now
                    ))
                if result.action.kind == ActionKind.OPEN_PANEL:
                    opened_panel = result.action.target_name
            else:
                message = outcome.message or "That didn't work."

        new_state.last_turn_at = now
        self.session_store.set(new_state)

        self.transcript.append(conversation_id, ChatMessage(
            id=uuid.uuid4().hex,
            role='assistant',
            content=message,
            timestamp=now,
            options=list(result.options),
            opened_panel=opened_panel,
            is_error=result.error_kind is not None
        ))

        self.logger.info(f"Turn {new_state.turn_id} of {conversation_id} via {result.tier} "
                         f"in {time.time() - start_time:.3f}s")

        return EngineResponse(
            conversation_id=conversation_id,
            message=message,
            tier=result.tier,
            action=result.action,
            options=list(result.options),
            executed=executed,
            error_kind=result.error_kind,
            turn_id=new_state.turn_id
        )

    def close(self):
        """Release the bridge worker pool"""
        self.runner.shutdown()
        self.logger.info("ChatNav engine closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
