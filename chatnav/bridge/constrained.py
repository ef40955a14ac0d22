"""
Constrained LLM bridge.

The model is only ever asked to pick from a bounded candidate set or to
classify a message into a closed set of intents. Responses are
schema-validated; anything unknown or malformed becomes `fail`.
"""

import json
import time
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Callable, Sequence

from ..core.config import Config
from ..core.types import Candidate
from ..core.exceptions import BridgeError, BridgeTimeout, ConnectionError, TurnCancelled
from ..utils.llm_client import LLMClient

logger = logging.getLogger(__name__)

SELECT = 'select'
NEED_MORE_INFO = 'need_more_info'
FAIL = 'fail'

DECISIONS = (SELECT, NEED_MORE_INFO, FAIL)

INTENTS = ('answer_from_context', 'general_answer', 'need_context', 'unsupported',
           'navigate', 'open_panel', 'retrieve_from_app')

_TARGETED_INTENTS = ('navigate', 'open_panel')


@dataclass
class BridgeRequest:
    """Everything the model is allowed to see for one call"""
    user_message: str
    chat_context: Dict[str, Any] = field(default_factory=dict)
    ui_context: Optional[Dict[str, Any]] = None
    bounded_candidates: List[Candidate] = field(default_factory=list)
    allowed_targets: List[Dict[str, str]] = field(default_factory=list)
    expanded: bool = False


@dataclass
class BridgeDecision:
    decision: str
    choice_id: Optional[str] = None
    confidence: float = 0.0
    reason: str = ''


@dataclass
class IntentResult:
    intent: str
    args: Dict[str, Any] = field(default_factory=dict)

    @property
    def reply(self) -> Optional[str]:
        text = self.args.get('answer')
        return text.strip() if isinstance(text, str) and text.strip() else None


class LLMBridge(ABC):
    """Black-box classifier with a JSON contract"""

    @abstractmethod
    def choose(self, request: BridgeRequest) -> BridgeDecision:
        """Pick one of request.bounded_candidates, ask for more info, or fail"""
        pass

    @abstractmethod
    def classify(self, request: BridgeRequest) -> IntentResult:
        """Classify a free-form message into the closed intent set"""
        pass


def parse_decision(raw: Any) -> BridgeDecision:
    """Validate a raw choose() payload. Does not check set membership."""
    if not isinstance(raw, dict):
        return BridgeDecision(FAIL, reason='non-object response')

    decision = raw.get('decision')
    if decision not in DECISIONS:
        return BridgeDecision(FAIL, reason=f'unknown decision {decision!r}')

    try:
        confidence = float(raw.get('confidence', 0.0))
    except (TypeError, ValueError):
        confidence = 0.0

    choice_id = raw.get('choice_id')
    if decision == SELECT and not isinstance(choice_id, str):
        return BridgeDecision(FAIL, reason='select without choice_id')

    return BridgeDecision(decision, choice_id if decision == SELECT else None,
                          confidence, str(raw.get('reason', '')))


def parse_intent(raw: Any, allowed_target_ids: Sequence[str]) -> IntentResult:
    """Validate a raw classify() payload against the closed intent set"""
    if not isinstance(raw, dict):
        return IntentResult(FAIL)

    intent = raw.get('intent')
    args = raw.get('args') or {}
    if intent not in INTENTS or not isinstance(args, dict):
        logger.warning(f"Bridge returned unknown intent {intent!r}")
        return IntentResult(FAIL)

    if intent in _TARGETED_INTENTS and args.get('target_id') not in allowed_target_ids:
        logger.warning(f"Bridge targeted unknown id {args.get('target_id')!r}")
        return IntentResult(FAIL)

    if intent == 'retrieve_from_app' and not isinstance(args.get('name'), str):
        return IntentResult(FAIL)

    return IntentResult(intent, args)


class OllamaBridge(LLMBridge):
    """Bridge backed by a local Ollama model"""

    def __init__(self, llm_client: LLMClient, config: Config):
        self.llm_client = llm_client
        self.config = config
        self.timeout = config.get('bridge.timeout_seconds', 2.0)

    def choose(self, request: BridgeRequest) -> BridgeDecision:
        options = "\n".join(
            f'- id: "{c.id}" label: "{c.label}"' + (f' ({c.sublabel})' if c.sublabel else '')
            for c in request.bounded_candidates
        )

        prompt = f"""The user was shown a list of options and replied. Decide which option they meant. Return valid JSON only:

{{
    "decision": "select|need_more_info|fail",
    "choice_id": "id of the chosen option, only when decision is select",
    "confidence": 0.0,
    "reason": "brief explanation"
}}

Options:
{options}

Rules:
- choice_id MUST be one of the ids listed above
- Use need_more_info when the reply could mean more than one option
- Use fail when the reply is not about these options

User reply: "{request.user_message}"

JSON:"""

        try:
            raw = self.llm_client.call_ollama_json(prompt, timeout=self.timeout)
        except ConnectionError as e:
            raise BridgeError(str(e))
        return parse_decision(raw)

    def classify(self, request: BridgeRequest) -> IntentResult:
        targets = "\n".join(f'- id: "{t["id"]}" label: "{t["label"]}"' for t in request.allowed_targets)

        prompt = f"""Classify the user's message for an in-app assistant. Return valid JSON only:

{{
    "intent": "answer_from_context|general_answer|need_context|unsupported|navigate|open_panel|retrieve_from_app",
    "args": {{}}
}}

Intents:
- answer_from_context: answerable from the chat or UI context below; args.answer is the reply
- general_answer: time, math or static knowledge; args.answer is the reply
- need_context: the message refers to something not in the context below
- unsupported: outside what the assistant can do
- navigate / open_panel: args.target_id MUST be one of the targets below
- retrieve_from_app: the user asks whether an item exists; args.entity_type and args.name

Targets:
{targets}

Chat context: {json.dumps(request.chat_context)}
UI context: {json.dumps(request.ui_context or {})}

User message: "{request.user_message}"

JSON:"""

        try:
            raw = self.llm_client.call_ollama_json(prompt, timeout=self.timeout)
        except ConnectionError as e:
            raise BridgeError(str(e))
        return parse_intent(raw, [t['id'] for t in request.allowed_targets])


class NullBridge(LLMBridge):
    """Used when the bridge is disabled; every call fails closed"""

    def choose(self, request: BridgeRequest) -> BridgeDecision:
        return BridgeDecision(FAIL, reason='bridge disabled')

    def classify(self, request: BridgeRequest) -> IntentResult:
        return IntentResult(FAIL)


class DeadlineRunner:
    """
    Runs bridge calls on a worker pool with a hard deadline.

    While waiting it polls `is_cancelled` so a stop phrase arriving
    mid-call releases the turn immediately; the late result is dropped.
    """

    POLL_SECONDS = 0.05

    def __init__(self, max_workers: int = 4):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='chatnav-bridge')

    def run(self, fn: Callable[[], Any], timeout: float,
            is_cancelled: Optional[Callable[[], bool]] = None) -> Any:
        start = time.time()
        future = self._pool.submit(fn)
        deadline = start + timeout

        while True:
            if is_cancelled and is_cancelled():
                future.cancel()
                raise TurnCancelled("turn superseded while bridge call was outstanding")
            remaining = deadline - time.time()
            if remaining <= 0:
                future.cancel()
                raise BridgeTimeout(f"bridge call exceeded {timeout:.2f}s")
            try:
                result = future.result(timeout=min(self.POLL_SECONDS, remaining))
                break
            except FutureTimeout:
                continue

        if is_cancelled and is_cancelled():
            raise TurnCancelled("bridge result arrived after the turn was superseded")

        logger.debug(f"Bridge call finished in {time.time() - start:.3f}s")
        return result

    def shutdown(self) -> None:
        self._pool.shutdown(wait=False)


class BridgeCall:
    """
    Per-turn handle on the bridge: applies the deadline and the turn's
    cancellation check to every call.
    """

    def __init__(self, bridge: LLMBridge, runner: Optional[DeadlineRunner], timeout: float,
                 is_cancelled: Optional[Callable[[], bool]] = None):
        self.bridge = bridge
        self.runner = runner
        self.timeout = timeout
        self.is_cancelled = is_cancelled
        self.calls = 0

    def _run(self, fn: Callable[[], Any]) -> Any:
        self.calls += 1
        if self.runner is None:
            result = fn()
            if self.is_cancelled and self.is_cancelled():
                raise TurnCancelled("bridge result arrived after the turn was superseded")
            return result
        return self.runner.run(fn, self.timeout, self.is_cancelled)

    def choose(self, request: BridgeRequest) -> BridgeDecision:
        return self._run(lambda: self.bridge.choose(request))

    def classify(self, request: BridgeRequest) -> IntentResult:
        return self._run(lambda: self.bridge.classify(request))
