from __future__ import annotations

import threading

from chatnav.bridge.constrained import IntentResult
from chatnav.core.config import Config
from chatnav.core.engine import ChatNavEngine
from chatnav.core.types import ActionKind, ErrorKind
from chatnav.executor import RecordingExecutor
from chatnav.generation import responses
from chatnav.retrieval.app_data import AppEntity, InMemoryAppDataStore
from chatnav.session.context import ChatMessage

from conftest import StubBridge, FakeClock, make_candidates

TWO_QUICK_LINKS_UI = {
    'mode': 'dashboard',
    'widgets': [
        {'id': 'quick-links-a', 'title': 'Quick Links A'},
        {'id': 'quick-links-b', 'title': 'Quick Links B'},
    ],
}


def _seed_options(transcript, clock, *labels: str) -> None:
    transcript.append('c1', ChatMessage(id='seed', role='assistant', content='Pick one',
                                        timestamp=clock(), options=make_candidates(*labels)))


def test_known_command_executes(engine, executor, dashboard_ui) -> None:
    response = engine.handle('c1', "open panel e", dashboard_ui)
    assert response.executed
    assert response.message == "Opening Panel E."
    assert executor.executed[-1].target_id == 'panel-e'
    state = engine.get_state('c1')
    assert state.action_history[0].target_name == 'Panel E'
    assert state.request_history[0].type == 'command'


def test_latch_then_explicit_command(engine, executor, dashboard_ui) -> None:
    first = engine.handle('c1', "2", dashboard_ui)
    assert first.action.target_id == 'link-2'
    assert engine.get_state('c1').widget_latch.widget_id == 'quick-links-d'

    second = engine.handle('c1', "open panel e", dashboard_ui)
    assert second.action.kind == ActionKind.OPEN_PANEL
    assert second.action.target_id == 'panel-e'
    state = engine.get_state('c1')
    assert state.widget_latch is None
    assert state.live_contexts() == 0


def test_list_membership_question(engine, transcript, clock) -> None:
    _seed_options(transcript, clock, 'D', 'E')
    response = engine.handle('c1', "is F in the list?")
    assert response.message == "No, only D and E."
    assert engine.handle('c1', "is E in the list?").message == "Yes, E is in the list."


def test_typo_suggestion_rejection_then_fallback(engine, dashboard_ui) -> None:
    suggestion = engine.handle('c1', "vuew demo widgets", dashboard_ui)
    assert suggestion.message == "Did you mean Demo Widget? I can open it for you."
    assert suggestion.action is None

    rejected = engine.handle('c1', "no", dashboard_ui)
    assert rejected.message == responses.WHAT_INSTEAD

    repeated = engine.handle('c1', "vuew demo widgets", dashboard_ui)
    assert repeated.message.startswith("I'm not sure what you meant.")
    assert 'demo widget' not in repeated.message.lower()
    assert repeated.error_kind == ErrorKind.INPUT_UNRECOGNIZED


def test_typo_suggestion_affirmed(engine, executor, dashboard_ui) -> None:
    engine.handle('c1', "vuew demo widgets", dashboard_ui)
    response = engine.handle('c1', "yes", dashboard_ui)
    assert response.executed
    assert executor.executed[-1].target_id == 'demo-widget'


def test_affirmation_without_suggestion(engine) -> None:
    assert engine.handle('c1', "yes").message == responses.YES_TO_WHAT


def test_stop_during_clarification(engine) -> None:
    clarifier = engine.handle('c1', "quick links", TWO_QUICK_LINKS_UI)
    assert [c.label for c in clarifier.options] == ['Quick Links A', 'Quick Links B']
    assert engine.get_state('c1').clarification is not None

    stopped = engine.handle('c1', "skip", TWO_QUICK_LINKS_UI)
    assert stopped.message == "Okay, stopped."
    state = engine.get_state('c1')
    assert state.clarification is None
    assert state.pending_options is None

    # a bare ordinal does not revive a stopped list
    after = engine.handle('c1', "2", TWO_QUICK_LINKS_UI)
    assert after.action is None
    assert after.message == responses.CONTEXT_STALE

    resumed = engine.handle('c1', "back to the options", TWO_QUICK_LINKS_UI)
    assert [c.label for c in resumed.options] == ['Quick Links A', 'Quick Links B']
    picked = engine.handle('c1', "2", TWO_QUICK_LINKS_UI)
    assert picked.action.target_id == 'quick-links-b'


def test_stop_with_nothing_active(engine) -> None:
    assert engine.handle('c1', "stop").message == "Okay."


def test_question_during_clarification_is_answered(engine) -> None:
    engine.handle('c1', "quick links", TWO_QUICK_LINKS_UI)
    answer = engine.handle('c1', "where am I?", TWO_QUICK_LINKS_UI)
    assert answer.message == "You're on the dashboard."
    assert answer.action.kind == ActionKind.ANSWER_FROM_CONTEXT
    state = engine.get_state('c1')
    assert state.clarification is None
    assert state.paused_snapshot.reason == 'interrupt'

    # the interrupted list still accepts a bare ordinal
    picked = engine.handle('c1', "1", TWO_QUICK_LINKS_UI)
    assert picked.action.target_id == 'quick-links-a'


def test_single_live_context_holds_across_turns(engine, transcript, clock, dashboard_ui) -> None:
    _seed_options(transcript, clock, 'Alpha', 'Beta')
    for text in ("2", "the widget", "1", "1 from chat", "quick links", "open panel e",
                 "vuew demo widgets", "no", "stop", "back to the options"):
        engine.handle('c1', text, dashboard_ui)
        state = engine.get_state('c1')
        assert state.live_contexts() <= 1


def test_dual_source_flow(engine, transcript, clock, dashboard_ui, bridge) -> None:
    _seed_options(transcript, clock, 'Alpha', 'Beta')
    question = engine.handle('c1', "2", dashboard_ui)
    assert question.action is None
    assert "Quick Links D" in question.message

    picked = engine.handle('c1', "the widget", dashboard_ui)
    assert picked.action.target_id == 'link-2'
    assert bridge.calls == 0


def test_unique_ordinal_makes_no_bridge_call(engine, transcript, clock, bridge) -> None:
    _seed_options(transcript, clock, 'Alpha', 'Beta', 'Gamma')
    response = engine.handle('c1', "second")
    assert response.action.target_id == 'beta'
    assert bridge.calls == 0


def test_options_decay(engine, transcript, clock) -> None:
    _seed_options(transcript, clock, 'Alpha', 'Beta')
    clock.advance(120)
    response = engine.handle('c1', "2")
    assert response.message == responses.CONTEXT_STALE


def test_need_context_retries_once(config, clock) -> None:
    bridge = StubBridge(intents=[
        IntentResult('need_context'),
        IntentResult('general_answer', {'answer': 'It is sunny.'}),
    ])
    with ChatNavEngine(config, bridge=bridge, clock=clock) as engine:
        response = engine.handle('c1', "what's the weather like")
    assert response.message == 'It is sunny.'
    assert response.action.kind == ActionKind.GENERAL_ANSWER
    assert len(bridge.classify_requests) == 2
    assert bridge.classify_requests[1].expanded


def test_need_context_twice_asks_to_reshow(config, clock) -> None:
    bridge = StubBridge(intents=[IntentResult('need_context'), IntentResult('need_context')])
    with ChatNavEngine(config, bridge=bridge, clock=clock) as engine:
        response = engine.handle('c1', "what about that one?")
    assert response.message == responses.NEED_RESHOW
    assert len(bridge.classify_requests) == 2


def test_general_llm_failure_falls_through(engine) -> None:
    response = engine.handle('c1', "what's the weather like")
    assert response.tier == 'terminal_unresolved'
    assert response.message.startswith("I'm not sure what you meant.")


def test_history_questions(engine, dashboard_ui) -> None:
    engine.handle('c1', "open panel e", dashboard_ui)
    assert engine.handle('c1', "did I ask you to open panel e?", dashboard_ui).message == \
        "Yes, you asked me to open panel e."
    assert engine.handle('c1', "did I open recent?", dashboard_ui).message == \
        "No, you haven't opened recent."
    assert engine.handle('c1', "what did I do", dashboard_ui).message == \
        "Your last action was opening Panel E (open_panel)."


def test_failed_execution_is_not_recorded(config, clock, dashboard_ui) -> None:
    executor = RecordingExecutor(fail_targets=['panel-e'])
    with ChatNavEngine(config, bridge=StubBridge(), executor=executor, clock=clock) as engine:
        response = engine.handle('c1', "open panel e", dashboard_ui)
        assert not response.executed
        assert response.message == "I couldn't open Panel E."
        assert engine.get_state('c1').action_history == []


def test_failed_execution_keeps_rejections(config, clock, dashboard_ui) -> None:
    executor = RecordingExecutor(fail_targets=['panel-e'])
    with ChatNavEngine(config, bridge=StubBridge(), executor=executor, clock=clock) as engine:
        engine.handle('c1', "vuew demo widgets", dashboard_ui)
        engine.handle('c1', "no", dashboard_ui)
        assert engine.get_state('c1').rejected_suggestions == {'demo widget'}

        engine.handle('c1', "open panel e", dashboard_ui)
        assert engine.get_state('c1').rejected_suggestions == {'demo widget'}

        assert engine.handle('c1', "open recent", dashboard_ui).executed
        assert engine.get_state('c1').rejected_suggestions == set()


def test_app_data_lookup(config, clock) -> None:
    store = InMemoryAppDataStore([
        AppEntity('w1', 'Sales Chart', 'widget', owner_id='u1', entry_name='Q3 Review'),
    ])
    with ChatNavEngine(config, bridge=StubBridge(), app_store=store, clock=clock) as engine:
        found = engine.handle('c1', "do I have a widget called Sales Chart?", user_id='u1')
        hidden = engine.handle('c2', "do I have a widget called Sales Chart?", user_id='u2')
    assert found.message == "Yes, you have a widget called Sales Chart in Q3 Review."
    assert found.action.kind == ActionKind.RETRIEVE_FROM_APP
    assert hidden.message == "I couldn't find a widget called Sales Chart."


def test_registered_manifest_is_routable(engine, executor) -> None:
    accepted = engine.register_manifests([
        {'panelId': 'weather', 'title': 'Weather', 'intents': [{'name': 'forecast', 'examples': ['forecast']}]},
        {'title': 'broken'},
    ])
    assert accepted == 1
    response = engine.handle('c1', "open weather")
    assert executor.executed[-1].target_id == 'weather'
    assert response.message == "Opening Weather."


def test_manifest_with_bad_examples_does_not_break_routing(engine) -> None:
    accepted = engine.register_manifests([
        {'panelId': 'weather', 'title': 'Weather', 'intents': [{'name': 'forecast', 'examples': [42]}]},
    ])
    assert accepted == 0
    answer = engine.handle('c1', "where am I?", TWO_QUICK_LINKS_UI)
    assert answer.tier != 'error'
    assert answer.message == "You're on the dashboard."


def test_stop_cancels_inflight_bridge_call(config) -> None:
    config.set('bridge.timeout_seconds', 10.0)
    bridge = StubBridge(intents=[IntentResult('general_answer', {'answer': 'late'})], delay=1.0)
    engine = ChatNavEngine(config, bridge=bridge, clock=FakeClock())
    results = {}

    def slow_turn() -> None:
        results['slow'] = engine.handle('c1', "what's the weather like")

    worker = threading.Thread(target=slow_turn)
    worker.start()
    assert bridge.started.wait(5)
    stop = engine.handle('c1', "stop")
    worker.join(5)
    engine.close()

    assert results['slow'].tier == 'cancelled'
    assert stop.message == "Okay."
    assert engine.get_state('c1').turn_id == 1


def test_transcript_records_both_sides(engine, transcript, dashboard_ui) -> None:
    engine.handle('c1', "open panel e", dashboard_ui)
    messages = transcript.get_recent('c1', 10)
    assert [m.role for m in messages] == ['user', 'assistant']
    assert messages[1].opened_panel == 'Panel E'


def test_bridge_disabled_uses_null_bridge(clock) -> None:
    config = Config()
    config.set('bridge.enabled', False)
    with ChatNavEngine(config, clock=clock) as engine:
        assert engine.llm_client is None
        response = engine.handle('c1', "tell me a joke")
    assert response.tier == 'terminal_unresolved'
