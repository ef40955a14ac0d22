from __future__ import annotations

import json

import pytest

from chatnav.core.exceptions import SessionError
from chatnav.core.types import ExecutableContext
from chatnav.session.context import (
    ChatMessage, ListPreview, InMemoryTranscript, build_chat_context, build_ui_context
)
from chatnav.session.state import SessionState, HistoryEntry
from chatnav.session.store import InMemorySessionStore, JsonFileSessionStore

NOW = 1_000_000.0


def test_registering_options_replaces_latch(candidates) -> None:
    state = SessionState(conversation_id='c1')
    state.engage_widget_latch('quick-links-d', 'Quick Links D', candidates('A', 'B'), NOW)
    assert state.executable_context == ExecutableContext.FOCUSED_WIDGET

    state.register_chat_options(candidates('X', 'Y'), NOW, question='Which one?')
    assert state.widget_latch is None
    assert state.pending_options.labels == ['X', 'Y']
    assert state.clarification.active_option_set_id == state.pending_options.option_set_id
    assert state.live_contexts() == 1


def test_engaging_latch_replaces_options(candidates) -> None:
    state = SessionState(conversation_id='c1')
    state.register_chat_options(candidates('X', 'Y'), NOW, question='Which one?')
    state.engage_widget_latch('quick-links-d', 'Quick Links D', candidates('A'), NOW)
    assert state.pending_options is None
    assert state.clarification is None
    assert state.live_contexts() == 1


def test_relatching_same_widget_refreshes(candidates) -> None:
    state = SessionState(conversation_id='c1')
    state.engage_widget_latch('w', 'W', candidates('A'), NOW)
    state.engage_widget_latch('w', 'W', candidates('A', 'B'), NOW + 5)
    assert state.widget_latch.engaged_at == NOW
    assert state.widget_latch.last_used_at == NOW + 5
    assert state.widget_latch.labels == ['A', 'B']


def test_expire(candidates) -> None:
    state = SessionState(conversation_id='c1')
    state.register_chat_options(candidates('X'), NOW)
    state.expire(NOW + 30, grace_seconds=60)
    assert state.pending_options is not None
    state.expire(NOW + 61, grace_seconds=60)
    assert state.pending_options is None

    state.engage_widget_latch('w', 'W', candidates('A'), NOW)
    state.expire(NOW + 1, grace_seconds=60, visible_widget_ids={'other'})
    assert state.widget_latch is None

    state.engage_widget_latch('w', 'W', candidates('A'), NOW)
    state.expire(NOW + 100, grace_seconds=60, latch_ttl_seconds=0, visible_widget_ids={'w'})
    assert state.widget_latch is not None
    state.expire(NOW + 100, grace_seconds=60, latch_ttl_seconds=50, visible_widget_ids={'w'})
    assert state.widget_latch is None


def test_pause_and_resume(candidates) -> None:
    state = SessionState(conversation_id='c1')
    state.register_chat_options(candidates('X', 'Y'), NOW, question='Which one?')
    snapshot = state.pause(NOW + 1, 'interrupt')
    assert snapshot.reason == 'interrupt'
    assert state.pending_options is None

    resumed = state.resume(NOW + 2)
    assert resumed.labels == ['X', 'Y']
    assert state.paused_snapshot is None
    assert state.clarification.question == 'Which one?'


def test_pause_without_options_is_noop() -> None:
    state = SessionState(conversation_id='c1')
    assert state.pause(NOW, 'stop') is None
    assert state.paused_snapshot is None


def test_reject_suggestion(candidates) -> None:
    state = SessionState(conversation_id='c1')
    state.set_suggestion(candidates('Demo Widget'))
    assert state.reject_suggestion() == ['Demo Widget']
    assert state.rejected_suggestions == {'demo widget'}
    assert state.last_suggestion is None
    assert state.reject_suggestion() == []


def test_history_is_newest_first_and_bounded() -> None:
    state = SessionState(conversation_id='c1', max_history=2)
    for name in ('A', 'B', 'C'):
        state.record_action(HistoryEntry('open', 'open_panel', name, name.lower(), NOW))
    assert [e.target_name for e in state.action_history] == ['C', 'B']


def test_state_round_trip_keeps_durable_fields_only(candidates) -> None:
    state = SessionState(conversation_id='c1', turn_id=3)
    state.register_chat_options(candidates('X', 'Y'), NOW, question='Which one?')
    state.set_suggestion(candidates('Z'))
    state.rejected_suggestions.add('q')

    restored = SessionState.from_dict(json.loads(json.dumps(state.to_dict())))
    assert restored.turn_id == 3
    assert restored.pending_options.labels == ['X', 'Y']
    assert restored.pending_options.candidates[0].action_ref == state.pending_options.candidates[0].action_ref
    assert restored.last_suggestion is None
    assert restored.rejected_suggestions == set()


def test_from_dict_rejects_two_live_contexts(candidates) -> None:
    state = SessionState(conversation_id='c1')
    state.register_chat_options(candidates('X'), NOW)
    data = state.to_dict()
    latched = SessionState(conversation_id='c1')
    latched.engage_widget_latch('w', 'W', candidates('A'), NOW)
    data['widget_latch'] = latched.to_dict()['widget_latch']
    with pytest.raises(SessionError):
        SessionState.from_dict(data)


def test_from_dict_rejects_corrupt_data() -> None:
    with pytest.raises(SessionError):
        SessionState.from_dict({'turn_id': 1})


def test_in_memory_store_returns_copies() -> None:
    store = InMemorySessionStore()
    state = store.get_or_create('c1')
    store.set(state)
    loaded = store.get('c1')
    loaded.turn_id = 99
    assert store.get('c1').turn_id == 0


def test_json_store_persists_across_instances(tmp_path, candidates) -> None:
    store = JsonFileSessionStore(str(tmp_path))
    state = store.get_or_create('conv/1')
    state.register_chat_options(candidates('X', 'Y'), NOW)
    store.set(state)

    reopened = JsonFileSessionStore(str(tmp_path))
    loaded = reopened.get('conv/1')
    assert loaded.pending_options.labels == ['X', 'Y']
    assert reopened.get('missing') is None


def test_json_store_raises_on_corrupt_file(tmp_path) -> None:
    (tmp_path / 'bad.json').write_text('{not json', encoding='utf-8')
    with pytest.raises(SessionError):
        JsonFileSessionStore(str(tmp_path)).get('bad')


def _message(msg_id, role, content, ts, **kwargs) -> ChatMessage:
    return ChatMessage(id=msg_id, role=role, content=content, timestamp=ts, **kwargs)


def test_chat_context_fields_decay_independently(candidates) -> None:
    messages = [
        _message('1', 'assistant', 'Pick one', NOW - 70, options=candidates('A', 'B')),
        _message('2', 'assistant', 'Here is the list', NOW - 70,
                 list_preview=ListPreview('Recent', ['Roadmap'])),
        _message('3', 'assistant', 'Opening Recent.', NOW - 70, opened_panel='Recent'),
        _message('4', 'user', 'thanks', NOW - 5),
    ]
    ctx = build_chat_context(messages, NOW, {'options_seconds': 60, 'list_preview_seconds': 90,
                                             'opened_panel_seconds': 180})
    assert ctx.last_options is None
    assert [c.label for c in ctx.latest_options] == ['A', 'B']
    assert ctx.last_list_preview.items == ['Roadmap']
    assert ctx.last_opened_panel == 'Recent'
    assert ctx.last_user_message == 'thanks'
    assert ctx.last_assistant_message == 'Opening Recent.'
    assert ctx.is_stale


def test_chat_context_fresh_options(candidates) -> None:
    messages = [_message('1', 'assistant', 'Pick one', NOW - 10, options=candidates('A', 'B'))]
    ctx = build_chat_context(messages, NOW)
    assert [c.label for c in ctx.last_options] == ['A', 'B']
    assert not ctx.is_stale


def test_ui_context_caps_and_focus() -> None:
    snapshot = {
        'widgets': [{'id': f'w{i}', 'title': f'W{i}'} for i in range(12)],
        'open_items': ['a', 'b', 'c', 'd', 'e', 'f'],
        'focused_widget_id': 'w11',
    }
    ui = build_ui_context(snapshot, max_widgets=10, max_open_items=5)
    assert len(ui.visible_widgets) == 10
    assert len(ui.open_items) == 5
    assert ui.focused_widget_id is None


def test_ui_context_widget_items(dashboard_ui) -> None:
    ui = build_ui_context(dashboard_ui)
    focused = ui.focused_widget
    assert focused.title == 'Quick Links D'
    assert [c.label for c in focused.items] == ['Design Docs', 'Roadmap', 'Budget']
    assert focused.items[1].action_ref.param('widget_id') == 'quick-links-d'


def test_transcript_returns_recent_oldest_first() -> None:
    transcript = InMemoryTranscript()
    for i in range(5):
        transcript.append('c1', _message(str(i), 'user', f'm{i}', NOW + i))
    assert [m.content for m in transcript.get_recent('c1', 3)] == ['m2', 'm3', 'm4']
