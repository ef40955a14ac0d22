"""
Deterministic -> constrained-LLM ladder.

Only entered when deterministic selection was inconclusive, and only ever
over the bounded candidate set:

1. relaxed re-match, once: embedded ordinals, then label similarity
   under the relaxed fuzzy floor
2. bridge call with exactly the bounded candidates
3. the chosen id must belong to the set
4. otherwise a grounded clarifier re-showing the same candidates
"""

import logging
from typing import List, Callable, Optional

from ..core.config import Config
from ..core.turn import TurnInput
from ..core.types import Candidate, TierResult, ErrorKind
from ..core.exceptions import BridgeError, BridgeTimeout, BridgeHallucination
from ..bridge.constrained import SELECT
from ..matching.ordinals import match_ordinal_embedded
from ..matching.fuzzy import similarity_score, normalize_for_matching
from ..generation import responses

logger = logging.getLogger(__name__)

TIER_NAME = 'selection_arbitration'


def validate_choice(choice_id: Optional[str], candidates: List[Candidate]) -> Candidate:
    """
    Raises:
        BridgeHallucination: If the id is not one of the candidates
    """
    for candidate in candidates:
        if candidate.id == choice_id:
            return candidate
    raise BridgeHallucination(choice_id, [c.id for c in candidates])


def grounded_clarifier(candidates: List[Candidate], error_kind: ErrorKind) -> TierResult:
    """Re-show the same candidates and register them as the live option list"""
    question = responses.grounded_clarifier(candidates)
    options = list(candidates)

    def register(state, now):
        state.register_chat_options(options, now, question=question)

    return TierResult(
        handled=True,
        tier=TIER_NAME,
        message=question,
        options=options,
        mutations=[register],
        error_kind=error_kind
    )


class ConstrainedLadder:
    """Resolves inconclusive selections without ever leaving the candidate set"""

    def __init__(self, config: Config):
        self.config = config
        self.min_confidence = config.get('bridge.min_select_confidence', 0.6)
        self.relaxed_floor = config.get('fuzzy.relaxed_floor', 0.45)
        self.close_gap = config.get('fuzzy.close_gap', 0.08)

    def _relaxed_label_match(self, text: str, candidates: List[Candidate]) -> Optional[int]:
        """Index of the one label clearly closest to the input, if any"""
        raw = text.lower().strip()
        normalized = normalize_for_matching(text)
        scores = [max(similarity_score(raw, c.label), similarity_score(normalized, c.label))
                  for c in candidates]
        if not scores:
            return None

        ranked = sorted(range(len(scores)), key=lambda i: scores[i], reverse=True)
        best = ranked[0]
        runner_up = scores[ranked[1]] if len(ranked) > 1 else 0.0
        if scores[best] >= self.relaxed_floor and scores[best] - runner_up >= self.close_gap:
            return best
        return None

    def resolve(self, turn: TurnInput, text: str, candidates: List[Candidate],
                on_select: Callable[[Candidate], TierResult]) -> TierResult:
        labels = [c.label for c in candidates]

        index = match_ordinal_embedded(text, labels)
        if index is not None:
            logger.debug(f"Relaxed re-match resolved {text!r} to {labels[index]!r}")
            return on_select(candidates[index])

        index = self._relaxed_label_match(text, candidates)
        if index is not None:
            logger.debug(f"Relaxed label match resolved {text!r} to {labels[index]!r}")
            return on_select(candidates[index])

        try:
            decision = turn.bridge.choose(turn.bridge_request(candidates))
        except BridgeTimeout as e:
            logger.warning(f"Bridge timed out during selection: {e}")
            return grounded_clarifier(candidates, ErrorKind.BRIDGE_TIMEOUT)
        except BridgeError as e:
            logger.warning(f"Bridge failed during selection: {e}")
            return grounded_clarifier(candidates, ErrorKind.BRIDGE_ERROR)

        if decision.decision == SELECT:
            try:
                chosen = validate_choice(decision.choice_id, candidates)
            except BridgeHallucination as e:
                logger.warning(f"Discarding bridge choice: {e}")
                return grounded_clarifier(candidates, ErrorKind.BRIDGE_ERROR)

            if decision.confidence >= self.min_confidence:
                logger.info(f"Bridge selected {chosen.label!r} ({decision.confidence:.2f})")
                return on_select(chosen)
            logger.debug(f"Bridge choice {chosen.label!r} below confidence floor")

        return grounded_clarifier(candidates, ErrorKind.INPUT_AMBIGUOUS)
