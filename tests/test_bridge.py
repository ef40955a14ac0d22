from __future__ import annotations

import json

import pytest
import requests

from chatnav.bridge.constrained import (
    BridgeRequest, OllamaBridge, NullBridge, parse_decision, parse_intent, SELECT, FAIL
)
from chatnav.core.exceptions import BridgeError, BridgeTimeout, ConnectionError
from chatnav.utils.llm_client import LLMClient


def test_parse_decision_accepts_valid_select() -> None:
    decision = parse_decision({'decision': 'select', 'choice_id': 'b', 'confidence': '0.8', 'reason': 'x'})
    assert decision.decision == SELECT
    assert decision.choice_id == 'b'
    assert decision.confidence == 0.8


@pytest.mark.parametrize("raw", [
    None,
    "select b",
    {'decision': 'maybe'},
    {'decision': 'select'},
    {'decision': 'select', 'choice_id': 3},
])
def test_parse_decision_fails_closed(raw) -> None:
    assert parse_decision(raw).decision == FAIL


def test_parse_decision_drops_choice_unless_select() -> None:
    decision = parse_decision({'decision': 'need_more_info', 'choice_id': 'b'})
    assert decision.choice_id is None


def test_parse_intent() -> None:
    assert parse_intent({'intent': 'general_answer', 'args': {'answer': ' 4 '}}, []).reply == '4'
    assert parse_intent({'intent': 'open_panel', 'args': {'target_id': 'recent'}}, ['recent']).intent == 'open_panel'


@pytest.mark.parametrize("raw", [
    [],
    {'intent': 'delete_everything'},
    {'intent': 'open_panel', 'args': {'target_id': 'secret'}},
    {'intent': 'retrieve_from_app', 'args': {}},
    {'intent': 'general_answer', 'args': 'oops'},
])
def test_parse_intent_fails_closed(raw) -> None:
    assert parse_intent(raw, ['recent']).intent == FAIL


class FakeClient:

    def __init__(self, payload=None, error=None) -> None:
        self.payload = payload
        self.error = error
        self.prompts = []

    def call_ollama_json(self, prompt, model=None, timeout=None):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.payload


def test_ollama_bridge_prompt_lists_only_bounded_candidates(config, candidates) -> None:
    client = FakeClient({'decision': 'select', 'choice_id': 'beta', 'confidence': 0.9})
    bridge = OllamaBridge(client, config)
    decision = bridge.choose(BridgeRequest(user_message='the b one', bounded_candidates=candidates('Alpha', 'Beta')))
    assert decision.choice_id == 'beta'
    assert 'id: "alpha"' in client.prompts[0]
    assert 'id: "beta"' in client.prompts[0]


def test_ollama_bridge_maps_connection_errors(config) -> None:
    bridge = OllamaBridge(FakeClient(error=ConnectionError('down')), config)
    with pytest.raises(BridgeError):
        bridge.classify(BridgeRequest(user_message='hi'))


def test_ollama_bridge_validates_targets(config) -> None:
    client = FakeClient({'intent': 'navigate', 'args': {'target_id': 'go_home'}})
    bridge = OllamaBridge(client, config)
    request = BridgeRequest(user_message='home', allowed_targets=[{'id': 'go_home', 'label': 'Home'}])
    assert bridge.classify(request).intent == 'navigate'
    assert bridge.classify(BridgeRequest(user_message='home')).intent == FAIL


def test_null_bridge_fails_closed() -> None:
    bridge = NullBridge()
    assert bridge.choose(BridgeRequest(user_message='x')).decision == FAIL
    assert bridge.classify(BridgeRequest(user_message='x')).intent == FAIL


class FakeResponse:

    def __init__(self, body, status: int = 200) -> None:
        self.body = body
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        if isinstance(self.body, Exception):
            raise self.body
        return self.body


def _client() -> LLMClient:
    return LLMClient({'base_url': 'http://ollama.test', 'default_model': 'gemma:2b'})


def test_llm_client_parses_model_json(monkeypatch) -> None:
    monkeypatch.setattr(requests, 'post',
                        lambda *a, **kw: FakeResponse({'response': json.dumps({'intent': 'unsupported'})}))
    assert _client().call_ollama_json('p') == {'intent': 'unsupported'}


def test_llm_client_tolerates_bad_model_output(monkeypatch) -> None:
    monkeypatch.setattr(requests, 'post', lambda *a, **kw: FakeResponse({'response': 'not json'}))
    assert _client().call_ollama_json('p') == {}


def test_llm_client_error_mapping(monkeypatch) -> None:
    def timeout(*a, **kw):
        raise requests.Timeout('slow')

    monkeypatch.setattr(requests, 'post', timeout)
    with pytest.raises(BridgeTimeout):
        _client().call_ollama_json('p', timeout=0.1)

    monkeypatch.setattr(requests, 'post', lambda *a, **kw: FakeResponse({}, status=500))
    with pytest.raises(ConnectionError):
        _client().call_ollama_json('p')

    monkeypatch.setattr(requests, 'post', lambda *a, **kw: FakeResponse(ValueError('bad body')))
    with pytest.raises(BridgeError):
        _client().call_ollama_json('p')


def test_llm_client_connection_check(monkeypatch) -> None:
    monkeypatch.setattr(requests, 'get', lambda *a, **kw: FakeResponse({'models': [{'name': 'gemma:2b'}]}))
    assert _client().test_connection()

    def refused(*a, **kw):
        raise requests.ConnectionError('refused')

    monkeypatch.setattr(requests, 'get', refused)
    assert not _client().test_connection()
