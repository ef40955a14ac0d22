"""
Selection arbitration and the focused-widget latch.

Decides which context a selection-shaped input resolves against. Priority:
scope cue > explicit command > latch default > chat default.
"""

import re
import logging
from typing import List, Optional, Tuple

from ..core.config import Config
from ..core.turn import TurnInput
from ..core.types import Candidate, TierResult, ErrorKind, ExecutableContext
from ..session.context import WidgetSummary
from ..session.state import ClarificationState
from ..matching.classifiers import (
    ScopeCue, resolve_scope_cue, is_explicit_command, has_question_intent, is_new_question_or_command
)
from ..matching.ordinals import (
    is_selection_shaped, is_pure_ordinal, match_ordinal, match_ordinal_embedded,
    match_labels, badge_of, normalize_ordinal_typos
)
from ..generation import responses
from .ladder import ConstrainedLadder, TIER_NAME

logger = logging.getLogger(__name__)

_CHAT_ANSWER = re.compile(r"^(the\s+)?(chat|chat options|options in chat|from (the\s+)?chat|in chat)$")
_WIDGET_ANSWER = re.compile(r"^(the\s+)?(widget|panel|from the widget|from (the\s+)?panel)$")


def _clear_chat_selection(state, now):
    state.clear_executable_context()
    state.paused_snapshot = None


def _exit_latch_and_options(state, now):
    state.exit_widget_latch()
    state.clear_pending_options()


def _clear_clarification(state, now):
    state.clear_clarification()


class SelectionArbiter:
    """Resolves ordinal, badge and label selections against the right context"""

    def __init__(self, config: Config):
        self.config = config
        self.ladder = ConstrainedLadder(config)

    def resolve(self, turn: TurnInput) -> TierResult:
        text = turn.text
        state = turn.state
        cue = resolve_scope_cue(text)
        selection_text = cue.strip_from(text) if cue.present else text
        shaped = is_selection_shaped(selection_text)

        if state.clarification and state.clarification.pending_ordinal:
            answered = self._answer_which_source(turn, cue)
            if answered is not None:
                return answered

        if cue.present and selection_text and not shaped and has_question_intent(selection_text):
            return TierResult.pass_through(TIER_NAME)

        # Scope cues beat latches and defaults
        if cue.scope == 'chat':
            return self._resolve_chat_scope(turn, selection_text)
        if cue.scope == 'widget':
            return self._resolve_widget_scope(turn, cue, selection_text)

        if has_question_intent(text) and not shaped:
            return TierResult.pass_through(TIER_NAME)

        if is_explicit_command(text, turn.known_nouns):
            if state.widget_latch or state.pending_options:
                logger.debug("Explicit command bypasses selection context")
                return TierResult.pass_through(TIER_NAME, [_exit_latch_and_options])
            return TierResult.pass_through(TIER_NAME)

        if state.widget_latch:
            widget = turn.ui.widget(state.widget_latch.widget_id)
            items = widget.items if widget else state.widget_latch.candidates
            if shaped or match_labels(text, [c.label for c in items]):
                title = widget.title if widget else state.widget_latch.title
                return self._select(turn, selection_text, items, 'widget',
                                    (state.widget_latch.widget_id, title, items))

        chat_candidates, origin = self._chat_candidates(turn)
        focused = turn.ui.focused_widget

        if (chat_candidates and origin == 'transcript' and focused and focused.items
                and state.executable_context == ExecutableContext.NONE
                and is_pure_ordinal(selection_text)):
            chat_index = match_ordinal(selection_text, [c.label for c in chat_candidates])
            widget_index = match_ordinal(selection_text, [c.label for c in focused.items])
            if chat_index is not None and widget_index is not None:
                return self._which_source(selection_text, chat_candidates, focused)

        if chat_candidates:
            labels = [c.label for c in chat_candidates]
            if (shaped or match_labels(text, labels)
                    or match_ordinal_embedded(text, labels) is not None
                    or (state.clarification is not None
                        and not is_new_question_or_command(text, turn.known_nouns))):
                if origin == 'snapshot':
                    logger.debug("Selection resolves against interrupted option list")
                return self._select(turn, selection_text, chat_candidates, 'chat')
            return TierResult.pass_through(TIER_NAME)

        if shaped and focused and focused.items:
            return self._select(turn, selection_text, focused.items, 'widget',
                                (focused.id, focused.title, focused.items))

        if shaped and (turn.chat.latest_options or state.paused_snapshot):
            return TierResult(True, tier=TIER_NAME, message=responses.CONTEXT_STALE,
                              error_kind=ErrorKind.CONTEXT_STALE)

        return TierResult.pass_through(TIER_NAME)

    # ------------------------------------------------------------------

    def _chat_candidates(self, turn: TurnInput) -> Tuple[Optional[List[Candidate]], Optional[str]]:
        state = turn.state
        if state.pending_options:
            return state.pending_options.candidates, 'pending'

        snapshot = state.paused_snapshot
        if snapshot is not None:
            if snapshot.reason == 'interrupt':
                return snapshot.options, 'snapshot'
            # Stop-paused lists only come back on an explicit return
            return None, None

        options = turn.chat.last_options
        if options and not all(c.label.casefold() in state.rejected_suggestions for c in options):
            return options, 'transcript'
        return None, None

    def _on_select(self, turn: TurnInput, source: str, widget=None):
        def build(candidate: Candidate) -> TierResult:
            if source == 'widget':
                widget_id, title, items = widget

                def latch(state, now):
                    state.engage_widget_latch(widget_id, title, items, now)

                mutations = [latch]
            else:
                mutations = [_clear_chat_selection]

            logger.info(f"Selected {candidate.label!r} from {source}")
            return TierResult(
                handled=True,
                tier=TIER_NAME,
                message=responses.executed(candidate.label),
                action=candidate.action_ref,
                mutations=mutations,
                clears_rejections=True,
                request={
                    'type': 'select',
                    'target_type': candidate.action_ref.kind.value,
                    'target_name': candidate.label,
                    'target_id': candidate.id
                }
            )
        return build

    def _select(self, turn: TurnInput, text: str, candidates: List[Candidate],
                source: str, widget=None) -> TierResult:
        on_select = self._on_select(turn, source, widget)
        labels = [c.label for c in candidates]

        index = match_ordinal(text, labels)
        if index is not None:
            return on_select(candidates[index])

        matches = match_labels(text, labels)
        if len(matches) == 1:
            return on_select(candidates[matches[0]])

        bounded = [candidates[i] for i in matches] if len(matches) > 1 else list(candidates)
        return self.ladder.resolve(turn, text, bounded, on_select)

    def _which_source(self, ordinal_text: str, chat_candidates: List[Candidate],
                      focused: WidgetSummary) -> TierResult:
        ordinal = normalize_ordinal_typos(ordinal_text)
        question = responses.which_source(ordinal, len(chat_candidates), focused.title)

        def ask(state, now):
            state.clarification = ClarificationState(
                active_option_set_id=None,
                question=question,
                pending_ordinal=ordinal
            )

        logger.info("Dual-source ordinal; asking which source")
        return TierResult(True, tier=TIER_NAME, message=question, mutations=[ask],
                          error_kind=ErrorKind.INPUT_AMBIGUOUS)

    def _answer_which_source(self, turn: TurnInput, cue: ScopeCue) -> Optional[TierResult]:
        normalized = turn.text.lower().strip().rstrip('?!.')
        ordinal = turn.state.clarification.pending_ordinal
        focused = turn.ui.focused_widget

        source = None
        if cue.scope == 'chat' or _CHAT_ANSWER.match(normalized):
            source = 'chat'
        elif cue.scope == 'widget' or _WIDGET_ANSWER.match(normalized) or (
                focused and focused.title.lower() in normalized):
            source = 'widget'

        if source is None:
            if is_selection_shaped(turn.text):
                return None
            return TierResult.pass_through(TIER_NAME, [_clear_clarification])

        if source == 'chat':
            candidates = turn.chat.last_options or turn.chat.latest_options or []
            index = match_ordinal(ordinal, [c.label for c in candidates])
            if index is not None:
                return self._on_select(turn, 'chat')(candidates[index])
        elif focused is not None:
            index = match_ordinal(ordinal, [c.label for c in focused.items])
            if index is not None:
                return self._on_select(turn, 'widget', (focused.id, focused.title, focused.items))(
                    focused.items[index])

        return TierResult(True, tier=TIER_NAME, message=responses.CONTEXT_STALE,
                          mutations=[_clear_clarification], error_kind=ErrorKind.CONTEXT_STALE)

    def _resolve_chat_scope(self, turn: TurnInput, selection_text: str) -> TierResult:
        state = turn.state
        if state.pending_options:
            candidates = state.pending_options.candidates
        elif state.paused_snapshot:
            candidates = state.paused_snapshot.options
        else:
            candidates = turn.chat.last_options

        if not candidates:
            return TierResult(True, tier=TIER_NAME, message=responses.CONTEXT_STALE,
                              error_kind=ErrorKind.CONTEXT_STALE)

        if not selection_text:
            question = responses.which_one(candidates)
            options = list(candidates)

            def reshow(state, now):
                state.paused_snapshot = None
                state.register_chat_options(options, now, question=question)

            return TierResult(True, tier=TIER_NAME, message=question, options=options, mutations=[reshow])

        return self._select(turn, selection_text, candidates, 'chat')

    def _widget_for_cue(self, turn: TurnInput, cue: ScopeCue) -> Optional[WidgetSummary]:
        cue_text = cue.cue_text or ''
        ui = turn.ui

        badge = re.match(r"from links panel\s*([a-z])$", cue_text)
        if badge:
            letter = badge.group(1)
            for widget in ui.visible_widgets:
                if widget.id == f"quick-links-{letter}" or (
                        'link' in widget.title.lower() and badge_of(widget.title) == letter):
                    return widget
            return None

        if cue_text.startswith('from links panel'):
            links = [w for w in ui.visible_widgets if 'link' in w.title.lower()]
            return links[0] if len(links) == 1 else None

        if cue_text == 'from recent':
            for widget in ui.visible_widgets:
                if widget.id == 'recent' or widget.title.lower() == 'recent':
                    return widget
            return None

        if turn.state.widget_latch:
            return ui.widget(turn.state.widget_latch.widget_id)
        return ui.focused_widget

    def _resolve_widget_scope(self, turn: TurnInput, cue: ScopeCue, selection_text: str) -> TierResult:
        widget = self._widget_for_cue(turn, cue)
        if widget is None:
            return TierResult(True, tier=TIER_NAME, message="I don't see that panel open right now.",
                              error_kind=ErrorKind.CONTEXT_STALE)

        items = list(widget.items)
        if not selection_text:
            def latch(state, now):
                state.engage_widget_latch(widget.id, widget.title, items, now)

            return TierResult(True, tier=TIER_NAME, message=f"Okay, using {widget.title}.", mutations=[latch])

        return self._select(turn, selection_text, items, 'widget', (widget.id, widget.title, items))
