"""
Action executor contract. The host implements this; the engine only hands
it validated actions.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from .core.types import Action, ActionKind

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    success: bool
    message: Optional[str] = None
    side_effects_applied: bool = False


class ActionExecutor(ABC):

    @abstractmethod
    def execute(self, action: Action) -> ExecutionResult:
        pass


class RecordingExecutor(ActionExecutor):
    """
    Records actions instead of performing them. Answer-type actions have no
    side effects; navigation and panel actions report side effects applied.
    """

    def __init__(self, fail_targets: Optional[List[str]] = None):
        self.executed: List[Action] = []
        self.fail_targets = set(fail_targets or [])

    def execute(self, action: Action) -> ExecutionResult:
        if action.target_id in self.fail_targets:
            logger.warning(f"Execution failed for {action.kind.value}:{action.target_id}")
            return ExecutionResult(False, f"I couldn't open {action.target_name or action.target_id}.")

        self.executed.append(action)
        side_effects = action.kind in (ActionKind.NAVIGATE, ActionKind.OPEN_PANEL)
        logger.info(f"Executed {action.kind.value} -> {action.target_id}")
        return ExecutionResult(True, None, side_effects)
