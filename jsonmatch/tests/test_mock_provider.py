from __future__ import annotations

import json

from jsonmatch.prompts.prompt_builder import build_analysis_prompt
from jsonmatch.provider.base import ChatMessage, CompletionOptions
from jsonmatch.provider.mock import MockAdapter, mock_matches


def test_mock_matches_find_leaf_values():
    text = "John Smith, 30, lives in Paris"
    schema = {"name": "John Smith", "age": 30, "active": True, "address": {"city": "Paris", "zip": ""}}

    matches = {m["property"]: m for m in mock_matches(schema, text)}

    assert set(matches) == {"name", "age", "address.city"}
    city = matches["address.city"]
    assert text[city["position"]["start"] : city["position"]["end"]] == "Paris"
    assert city["confidence"] == 95
    assert city["matchType"] == "exact"


def test_scripted_responses_come_first():
    adapter = MockAdapter(responses=["first"])
    adapter.enqueue("second")
    messages = [ChatMessage(role="user", content="hi")]

    outputs = [
        adapter.create_completion(messages=messages, model="mock-1", options=CompletionOptions()).content
        for _ in range(3)
    ]

    assert outputs[:2] == ["first", "second"]
    assert json.loads(outputs[2]) == {}
    assert len(adapter.calls) == 3


def test_analysis_prompt_gets_matches():
    prompt = build_analysis_prompt("mock", raw_json='{"city":"Paris"}', text="\nI moved to Paris")
    adapter = MockAdapter()

    result = adapter.create_completion(
        messages=[ChatMessage(**m) for m in prompt.as_messages()],
        model="mock-1",
        options=CompletionOptions(json_mode=True),
    )

    payload = json.loads(result.content)
    assert payload["matches"][0]["property"] == "city"
    assert payload["matches"][0]["position"] == {"start": 12, "end": 17}
    assert result.model == "mock-1-MOCK"


def test_other_prompts_echo_json():
    adapter = MockAdapter()
    messages = [ChatMessage(role="user", content='Original JSON:\n{"a": {"b": 1}}\n\nMatches: []')]

    result = adapter.create_completion(messages=messages, model="mock-1", options=CompletionOptions())

    assert json.loads(result.content) == {"a": {"b": 1}}
