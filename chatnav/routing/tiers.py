"""
Routing tiers.

Each tier is a function of the turn input returning a TierResult. A
pass-through may carry mutations; the router applies them to its working
copy of session state so later tiers see the effect.
"""

import re
import logging
from typing import List, Optional

from ..core.turn import TurnInput
from ..core.types import Action, ActionKind, Candidate, TierResult, ErrorKind
from ..core.exceptions import BridgeError
from ..vocabulary.builder import CommandDef
from ..matching.classifiers import (
    is_stop_phrase, is_return_phrase, is_reshow_phrase, is_rejection, is_affirmation,
    is_explicit_command, has_question_intent, canonicalize_command_input
)
from ..matching.ordinals import is_selection_shaped, badge_of
from ..matching.fuzzy import (
    build_suggestion, normalize_for_matching, default_suggestion_labels, generic_fallback_message,
    HIGH, MEDIUM
)
from ..retrieval.app_data import parse_existence_question
from ..generation import responses

logger = logging.getLogger(__name__)

_MEMBERSHIP = re.compile(
    r"^(is|are)\s+(?P<item>.+?)\s+(in|on|among|part of)\s+(the|this|that|those|these)\s+"
    r"(list|options|choices)\??$", re.IGNORECASE
)
_ASKED_ME = re.compile(r"^did i ask you to (open|show|go to|view) (the\s+)?(?P<target>.+?)\??$", re.IGNORECASE)
_DID_OPEN = re.compile(r"^did (i|you) (open|go to|show|view) (the\s+)?(?P<target>.+?)\??$", re.IGNORECASE)


# ----------------------------------------------------------------------
# Mutations

def _clear_selection_state(state, now):
    state.clear_executable_context()
    state.last_suggestion = None


def _clear_clarification(state, now):
    state.clear_clarification()


def _register(options: List[Candidate], question: str):
    def register(state, now):
        state.register_chat_options(options, now, question=question)
    return register


# ----------------------------------------------------------------------
# Shared result builders

def candidate_for(command: CommandDef) -> Candidate:
    return Candidate(
        id=command.panel_id or command.intent_name,
        label=command.label,
        action_ref=command.to_action()
    )


def command_result(tier: str, command: CommandDef) -> TierResult:
    action = command.to_action()
    verb = 'Opening' if command.action_kind == ActionKind.OPEN_PANEL else 'Going to'
    return TierResult(
        handled=True,
        tier=tier,
        message=responses.executed(command.label, verb),
        action=action,
        mutations=[_clear_selection_state],
        clears_rejections=True,
        request={
            'type': 'command',
            'target_type': command.action_kind.value,
            'target_name': command.label,
            'target_id': action.target_id
        }
    )


def answer_result(tier: str, text: str, kind: ActionKind = ActionKind.ANSWER_FROM_CONTEXT,
                  mutations=None) -> TierResult:
    return TierResult(
        handled=True,
        tier=tier,
        message=text,
        action=Action(kind=kind, text=text),
        mutations=list(mutations or [])
    )


def options_result(tier: str, message: str, options: List[Candidate],
                   error_kind: Optional[ErrorKind] = None) -> TierResult:
    return TierResult(
        handled=True,
        tier=tier,
        message=message,
        options=list(options),
        mutations=[_register(list(options), message)],
        error_kind=error_kind
    )


def stale_result(tier: str) -> TierResult:
    return TierResult(True, tier=tier, message=responses.CONTEXT_STALE, error_kind=ErrorKind.CONTEXT_STALE)


def informational_answer(turn: TurnInput, command: CommandDef) -> str:
    if command.intent_name == 'location_info':
        ui = turn.ui
        focused = ui.focused_widget
        return responses.location(ui.mode, ui.open_drawer, focused.title if focused else None, ui.active_item_id)
    if command.intent_name == 'last_action':
        history = turn.state.action_history
        if not history:
            return responses.last_action(None, None)
        return responses.last_action(history[0].target_type, history[0].target_name)
    return responses.NOT_UNDERSTOOD


def lookup_entity(turn: TurnInput, tier: str, entity_type: str, name: str) -> Optional[TierResult]:
    if turn.app_store is None:
        return None
    found = turn.app_store.find(entity_type, name, turn.user_id)
    if found:
        entity = found[0]
        message = responses.entity_found(entity_type, entity.name, entity.entry_name)
        target_id = entity.id
    else:
        message = responses.entity_missing(entity_type, name)
        target_id = None
    logger.info(f"App lookup for {entity_type} {name!r}: {'found' if found else 'missing'}")
    return TierResult(
        handled=True,
        tier=tier,
        message=message,
        action=Action(kind=ActionKind.RETRIEVE_FROM_APP, target_id=target_id, target_name=name,
                      params=(('entity_type', entity_type),), text=message)
    )


# ----------------------------------------------------------------------
# Tiers

def stop_cancel(turn: TurnInput) -> TierResult:
    """Stop/cancel clears every selection context with a neutral acknowledgement"""
    if not is_stop_phrase(turn.text):
        return TierResult.pass_through('stop_cancel')

    state = turn.state
    active = (state.clarification is not None or state.pending_options is not None
              or state.widget_latch is not None or state.last_suggestion is not None)

    def stop(state, now):
        state.pause(now, 'stop')
        state.clear_executable_context()
        state.last_suggestion = None

    logger.info("Stop phrase; clearing selection state")
    return TierResult(True, tier='stop_cancel',
                      message=responses.STOP_ACK if active else responses.NOTHING_TO_STOP,
                      mutations=[stop])


def return_resume(turn: TurnInput) -> TierResult:
    """Restore a paused option list or re-show the latest one"""
    returning = is_return_phrase(turn.text)
    reshowing = is_reshow_phrase(turn.text)
    if not (returning or reshowing):
        return TierResult.pass_through('return_resume')

    state = turn.state
    snapshot = state.paused_snapshot

    if returning and snapshot is not None:
        question = snapshot.question or responses.which_one(snapshot.options)
        options = list(snapshot.options)

        def resume(state, now):
            state.resume(now)

        logger.info(f"Resuming {snapshot.reason}-paused option list")
        return TierResult(True, tier='return_resume', message=question, options=options, mutations=[resume])

    if state.pending_options:
        options = state.pending_options.candidates
    else:
        window = turn.config.get('selection.reshow_window_seconds', 120)
        latest = turn.chat.latest_options
        if latest and turn.chat.options_age is not None and turn.chat.options_age <= window:
            options = latest
        elif snapshot is not None:
            options = snapshot.options
        elif latest:
            return stale_result('return_resume')
        else:
            return TierResult(True, tier='return_resume', message="I haven't shown any options yet.")

    return options_result('return_resume', responses.which_one(options), options)


def command_interrupt(turn: TurnInput) -> TierResult:
    """
    A new command or question during a clarification exits it. Commands
    pause the option list so "back to the options" can restore it.
    """
    state = turn.state
    if state.clarification is None and state.pending_options is None:
        return TierResult.pass_through('command_interrupt')

    text = turn.text
    if is_selection_shaped(text):
        return TierResult.pass_through('command_interrupt')

    canonical = canonicalize_command_input(text)
    names_command = any(canonical in c.phrases for c in turn.vocabulary)

    if is_explicit_command(text, turn.known_nouns) or names_command:
        def interrupt(state, now):
            state.pause(now, 'interrupt')
            state.clear_clarification()
            state.exit_widget_latch()
            state.last_suggestion = None

        logger.info("Command interrupts active clarification")
        return TierResult.pass_through('command_interrupt', [interrupt])

    if has_question_intent(text) and state.clarification is not None:
        logger.debug("New question exits clarification")
        return TierResult.pass_through('command_interrupt', [_clear_clarification])

    return TierResult.pass_through('command_interrupt')


def suggestion_reject_affirm(turn: TurnInput) -> TierResult:
    """Rejection or affirmation of the last suggestion or option list"""
    state = turn.state
    suggestion = state.last_suggestion
    text = turn.text

    if is_rejection(text):
        if suggestion is None and state.pending_options is None and state.clarification is None:
            return TierResult.pass_through('suggestion_reject_affirm')

        offered = suggestion.labels if suggestion else []
        rejected = set(state.rejected_suggestions) | {l.casefold() for l in offered}
        remaining = []
        if len(offered) > 1:
            remaining = default_suggestion_labels(turn.vocabulary, rejected, limit=2)

        def reject(state, now):
            state.reject_suggestion()
            state.clear_executable_context()

        logger.info(f"Rejected suggestion {offered}")
        return TierResult(True, tier='suggestion_reject_affirm',
                          message=responses.rejection_reply(remaining), mutations=[reject])

    if not is_affirmation(text):
        return TierResult.pass_through('suggestion_reject_affirm')

    if suggestion is not None:
        if len(suggestion.candidates) == 1:
            chosen = suggestion.candidates[0]
            return TierResult(
                handled=True,
                tier='suggestion_reject_affirm',
                message=responses.executed(chosen.label),
                action=chosen.action_ref,
                mutations=[_clear_selection_state],
                clears_rejections=True,
                request={
                    'type': 'command',
                    'target_type': chosen.action_ref.kind.value,
                    'target_name': chosen.label,
                    'target_id': chosen.action_ref.target_id
                }
            )
        return options_result('suggestion_reject_affirm', responses.which_one(suggestion.candidates),
                              suggestion.candidates)

    if state.pending_options:
        options = state.pending_options.candidates
        return options_result('suggestion_reject_affirm', responses.which_one(options), options)

    return TierResult(True, tier='suggestion_reject_affirm', message=responses.YES_TO_WHAT,
                      error_kind=ErrorKind.INPUT_AMBIGUOUS)


def _known_noun_matches(turn: TurnInput) -> List[CommandDef]:
    canonical = canonicalize_command_input(turn.text)
    forms = {canonical, normalize_for_matching(canonical)}
    cleaned = re.sub(r"[?!.]+$", '', turn.text.lower().strip())
    forms.add(cleaned)
    forms.discard('')

    matches = []
    for command in turn.vocabulary:
        if any(form in command.phrases for form in forms):
            matches.append(command)
    return matches


def known_noun(turn: TurnInput) -> TierResult:
    """Exact vocabulary phrase after canonicalization"""
    matches = _known_noun_matches(turn)
    if not matches:
        return TierResult.pass_through('known_noun')

    if len(matches) == 1 and matches[0].intent_name == 'show_quick_links':
        badges = [c for c in turn.vocabulary if c.panel_id and c.panel_id.startswith('quick-links-')]
        if len(badges) == 1:
            matches = badges
        elif len(badges) > 1:
            options = [candidate_for(c) for c in badges]
            return options_result('known_noun', responses.disambiguation('Quick Links panel', options),
                                  options, ErrorKind.INPUT_AMBIGUOUS)

    if len(matches) > 1:
        options = [candidate_for(c) for c in matches]
        return options_result('known_noun', responses.disambiguation(matches[0].label, options),
                              options, ErrorKind.INPUT_AMBIGUOUS)

    command = matches[0]
    if command.is_informational:
        logger.info(f"Informational intent {command.intent_name}")
        return answer_result('known_noun', informational_answer(turn, command), mutations=[_clear_clarification])

    logger.info(f"Known command {command.label!r}")
    return command_result('known_noun', command)


def _answer_existence_from_context(turn: TurnInput, name: str) -> Optional[str]:
    wanted = name.casefold()
    preview = turn.chat.last_list_preview
    if preview and any(item.casefold() == wanted for item in preview.items):
        return f"Yes, {name} is in the {preview.title} list."
    for widget in turn.ui.visible_widgets:
        if widget.title.casefold() == wanted:
            return f"Yes, {widget.title} is open on your {turn.ui.mode}."
        for item in widget.items:
            if item.label.casefold() == wanted:
                return f"Yes, {item.label} is in {widget.title}."
    return None


def grounding_fallback(turn: TurnInput) -> TierResult:
    """Entity existence lookups, then typo suggestions over the vocabulary"""
    existence = parse_existence_question(turn.text)
    if existence is not None:
        from_context = _answer_existence_from_context(turn, existence.name)
        if from_context:
            return answer_result('grounding_fallback', from_context)
        looked_up = lookup_entity(turn, 'grounding_fallback', existence.entity_type, existence.name)
        if looked_up is not None:
            return looked_up
        return TierResult.pass_through('grounding_fallback')

    if has_question_intent(turn.text):
        return TierResult.pass_through('grounding_fallback')

    suggestion = build_suggestion(turn.text, turn.vocabulary, turn.state.rejected_suggestions,
                                  turn.config.fuzzy)

    if suggestion.filtered_by_rejection:
        return TierResult(True, tier='grounding_fallback', message=suggestion.message,
                          error_kind=ErrorKind.INPUT_UNRECOGNIZED)

    if not suggestion.matches or suggestion.matches[0].confidence not in (HIGH, MEDIUM):
        return TierResult.pass_through('grounding_fallback')

    candidates = [candidate_for(m.command) for m in suggestion.matches]
    logger.info(f"Typo suggestion for {turn.text!r}: {suggestion.labels}")

    if len(candidates) == 1:
        def suggest(state, now):
            state.set_suggestion(candidates)

        return TierResult(True, tier='grounding_fallback', message=suggestion.message,
                          mutations=[suggest], error_kind=ErrorKind.INPUT_UNRECOGNIZED)

    message = suggestion.message

    def suggest_many(state, now):
        state.register_chat_options(candidates, now, question=message)
        state.set_suggestion(candidates)

    return TierResult(True, tier='grounding_fallback', message=message, options=candidates,
                      mutations=[suggest_many], error_kind=ErrorKind.INPUT_UNRECOGNIZED)


def _item_in(item: str, labels: List[str]) -> bool:
    wanted = item.casefold().strip('"\' ')
    for label in labels:
        folded = label.casefold()
        if folded == wanted or badge_of(label) == wanted:
            return True
    return False


def context_qa(turn: TurnInput) -> TierResult:
    """Questions answerable from the chat context or request/action history"""
    text = turn.text.strip()

    membership = _MEMBERSHIP.match(text)
    if membership:
        item = membership.group('item').strip()
        options = turn.chat.last_options
        if options is None and turn.state.pending_options:
            options = turn.state.pending_options.candidates
        if options:
            labels = [c.label for c in options]
            return answer_result('context_qa', responses.list_membership(item, labels, _item_in(item, labels)))
        preview = turn.chat.last_list_preview
        if preview:
            present = _item_in(item, preview.items)
            return answer_result('context_qa', responses.list_membership(item, preview.items, present))
        if turn.chat.latest_options or turn.chat.is_stale:
            return stale_result('context_qa')
        return TierResult.pass_through('context_qa')

    asked = _ASKED_ME.match(text)
    if asked:
        target = asked.group('target').strip()
        found = any(target.casefold() in e.target_name.casefold() for e in turn.state.request_history)
        return answer_result('context_qa', responses.verification('request', target, found))

    did = _DID_OPEN.match(text)
    if did:
        target = did.group('target').strip()
        found = any(target.casefold() in e.target_name.casefold() for e in turn.state.action_history)
        return answer_result('context_qa', responses.verification('action', target, found))

    return TierResult.pass_through('context_qa')


def _command_by_target(turn: TurnInput, target_id: str) -> Optional[CommandDef]:
    for command in turn.vocabulary:
        if (command.panel_id or command.intent_name) == target_id:
            return command
    return None


def general_llm(turn: TurnInput) -> TierResult:
    """
    Last-resort intent classification. `need_context` gets exactly one
    retry with an expanded chat window.
    """
    try:
        result = turn.bridge.classify(turn.bridge_request())
        if result.intent == 'need_context' and turn.expand_chat is not None:
            logger.info("Bridge needs more context; retrying once with expanded window")
            expanded = turn.expand_chat()
            result = turn.bridge.classify(turn.bridge_request(chat=expanded, expanded=True))
    except BridgeError as e:
        logger.warning(f"General classification failed: {e}")
        return TierResult.pass_through('general_llm')

    intent = result.intent

    if intent == 'need_context':
        return TierResult(True, tier='general_llm', message=responses.NEED_RESHOW,
                          error_kind=ErrorKind.CONTEXT_STALE)

    if intent in ('answer_from_context', 'general_answer'):
        reply = result.reply
        if reply is None:
            return TierResult.pass_through('general_llm')
        kind = ActionKind.ANSWER_FROM_CONTEXT if intent == 'answer_from_context' else ActionKind.GENERAL_ANSWER
        return answer_result('general_llm', reply, kind)

    if intent == 'unsupported':
        return TierResult(True, tier='general_llm', message=responses.UNSUPPORTED,
                          action=Action(kind=ActionKind.UNSUPPORTED, text=responses.UNSUPPORTED))

    if intent in ('navigate', 'open_panel'):
        command = _command_by_target(turn, result.args['target_id'])
        if command is None:
            return TierResult.pass_through('general_llm')
        return command_result('general_llm', command)

    if intent == 'retrieve_from_app':
        looked_up = lookup_entity(turn, 'general_llm', result.args.get('entity_type', 'widget'),
                                  result.args['name'])
        if looked_up is not None:
            return looked_up

    return TierResult.pass_through('general_llm')


def terminal_unresolved(turn: TurnInput) -> TierResult:
    """Always handles; the reply is a clarification question"""
    state = turn.state
    if state.pending_options:
        options = state.pending_options.candidates
        return options_result('terminal_unresolved', responses.grounded_clarifier(options), options,
                              ErrorKind.INPUT_AMBIGUOUS)

    labels = default_suggestion_labels(turn.vocabulary, state.rejected_suggestions)
    return TierResult(True, tier='terminal_unresolved', message=generic_fallback_message(labels),
                      error_kind=ErrorKind.INPUT_UNRECOGNIZED)
