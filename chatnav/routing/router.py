"""
Tiered router: an ordered, short-circuiting pipeline of tiers
"""

import logging
from typing import Callable, List, Tuple

from ..core.config import Config
from ..core.turn import TurnInput
from ..core.types import TierResult
from ..session.state import SessionState
from ..arbitration.latch import SelectionArbiter
from . import tiers

logger = logging.getLogger(__name__)

# Order is a contract: each tier's pass-through conditions assume the tiers before it ran
TIER_ORDER = [
    'stop_cancel',
    'return_resume',
    'command_interrupt',
    'suggestion_reject_affirm',
    'selection_arbitration',
    'known_noun',
    'grounding_fallback',
    'context_qa',
    'general_llm',
    'terminal_unresolved',
]


class TieredRouter:
    """
    Runs tiers in TIER_ORDER against a working copy of session state.

    Pass-through mutations are applied to the working copy as they occur;
    the working copy becomes the new state only once a tier resolves.
    """

    def __init__(self, config: Config):
        self.config = config
        self.arbiter = SelectionArbiter(config)
        self.tiers: List[Tuple[str, Callable[[TurnInput], TierResult]]] = [
            (name, self._tier(name)) for name in TIER_ORDER
        ]

    def _tier(self, name: str) -> Callable[[TurnInput], TierResult]:
        if name == 'selection_arbitration':
            return self.arbiter.resolve
        return getattr(tiers, name)

    def route(self, turn: TurnInput) -> Tuple[TierResult, SessionState]:
        """
        Route one turn.

        Returns:
            The resolving tier's result and the resulting session state
        """
        working = turn.state.copy()
        turn.state = working

        for name, tier in self.tiers:
            result = tier(turn)
            for mutation in result.mutations:
                mutation(working, turn.now)

            if result.handled:
                result.tier = result.tier or name
                logger.info(f"Turn resolved by {name}")
                return result, working

            logger.debug(f"Tier {name} passed")

        # terminal_unresolved always handles
        raise RuntimeError("no tier resolved the turn")
