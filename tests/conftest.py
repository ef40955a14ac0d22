from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Optional

import pytest

from chatnav.core.config import Config
from chatnav.core.engine import ChatNavEngine
from chatnav.core.turn import TurnInput
from chatnav.core.types import Action, ActionKind, Candidate
from chatnav.bridge.constrained import (
    LLMBridge, BridgeCall, BridgeDecision, BridgeRequest, IntentResult, FAIL
)
from chatnav.executor import RecordingExecutor
from chatnav.session.context import (
    ChatContext, InMemoryTranscript, UIContext, build_ui_context
)
from chatnav.session.state import SessionState
from chatnav.vocabulary.builder import build_vocabulary


class StubBridge(LLMBridge):
    """Scripted bridge; records every request it sees"""

    def __init__(self, decisions: Optional[List[BridgeDecision]] = None,
                 intents: Optional[List[IntentResult]] = None,
                 delay: float = 0.0) -> None:
        self.decisions = list(decisions or [])
        self.intents = list(intents or [])
        self.delay = delay
        self.started = threading.Event()
        self.choose_requests: List[BridgeRequest] = []
        self.classify_requests: List[BridgeRequest] = []

    @property
    def calls(self) -> int:
        return len(self.choose_requests) + len(self.classify_requests)

    def choose(self, request: BridgeRequest) -> BridgeDecision:
        self.choose_requests.append(request)
        self.started.set()
        if self.delay:
            time.sleep(self.delay)
        return self.decisions.pop(0) if self.decisions else BridgeDecision(FAIL)

    def classify(self, request: BridgeRequest) -> IntentResult:
        self.classify_requests.append(request)
        self.started.set()
        if self.delay:
            time.sleep(self.delay)
        return self.intents.pop(0) if self.intents else IntentResult(FAIL)


class FakeClock:

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_candidates(*labels: str) -> List[Candidate]:
    candidates = []
    for label in labels:
        item_id = label.lower().replace(' ', '-')
        candidates.append(Candidate(
            id=item_id,
            label=label,
            action_ref=Action(kind=ActionKind.NAVIGATE, target_id=item_id, target_name=label)
        ))
    return candidates


DASHBOARD_UI: Dict[str, Any] = {
    'mode': 'dashboard',
    'widgets': [
        {'id': 'quick-links-d', 'title': 'Quick Links D', 'items': [
            {'id': 'link-1', 'label': 'Design Docs'},
            {'id': 'link-2', 'label': 'Roadmap'},
            {'id': 'link-3', 'label': 'Budget'},
        ]},
        {'id': 'panel-e', 'title': 'Panel E'},
        {'id': 'demo-widget', 'title': 'Demo Widget'},
    ],
    'focused_widget_id': 'quick-links-d',
}


@pytest.fixture
def config() -> Config:
    cfg = Config()
    cfg.set('bridge.enabled', False)
    cfg.set('bridge.timeout_seconds', 2.0)
    return cfg


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bridge() -> StubBridge:
    return StubBridge()


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def transcript() -> InMemoryTranscript:
    return InMemoryTranscript()


@pytest.fixture
def dashboard_ui() -> Dict[str, Any]:
    return DASHBOARD_UI


@pytest.fixture
def engine(config, bridge, executor, transcript, clock):
    eng = ChatNavEngine(config, bridge=bridge, executor=executor, transcript=transcript, clock=clock)
    yield eng
    eng.close()


@pytest.fixture
def candidates():
    return make_candidates


@pytest.fixture
def make_turn(config, clock):
    """Build a TurnInput for exercising tiers directly; the bridge runs inline"""

    def _make(text: str,
              state: Optional[SessionState] = None,
              chat: Optional[ChatContext] = None,
              ui: Optional[Dict[str, Any]] = None,
              bridge: Optional[LLMBridge] = None,
              runner=None,
              timeout: float = 2.0,
              **kwargs: Any) -> TurnInput:
        ui_context: UIContext = build_ui_context(ui)
        vocabulary = build_vocabulary(visible_panels=ui_context.visible_widgets)
        return TurnInput(
            text=text,
            state=state or SessionState(conversation_id='c1'),
            chat=chat or ChatContext(),
            ui=ui_context,
            vocabulary=vocabulary,
            now=clock(),
            config=config,
            bridge=BridgeCall(bridge or StubBridge(), runner, timeout),
            known_nouns=[c.label.lower() for c in vocabulary],
            **kwargs
        )

    return _make
