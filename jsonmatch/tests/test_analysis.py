from __future__ import annotations

import json

import pytest

from jsonmatch.analysis import analyze_text, parse_matches, sort_matches
from jsonmatch.errors import InvalidResponseFormatError, NotConfiguredError
from jsonmatch.provider.factory import CompletionService
from jsonmatch.schemas import MatchResult

TEXT = "Name: John Smith, age 30"


def _entry(prop, matched, start, end, confidence=90, match_type="exact"):
    return {
        "property": prop,
        "matchedText": matched,
        "position": {"start": start, "end": end},
        "confidence": confidence,
        "matchType": match_type,
    }


def test_parse_matches_valid_payload():
    payload = json.dumps({"matches": [_entry("name", "John Smith", 6, 16, 95), _entry("age", "30", 22, 24)]})

    matches = parse_matches(payload, TEXT)

    assert [m.property for m in matches] == ["name", "age"]
    assert matches[0].position.start == 6


@pytest.mark.parametrize("raw", ["not json", "", None, '{"results": []}', "[1, 2]"])
def test_parse_matches_rejects_bad_payloads(raw):
    with pytest.raises(InvalidResponseFormatError):
        parse_matches(raw, TEXT)


def test_parse_matches_handles_fences_and_wrappers():
    payload = "```json\n" + json.dumps({"result": {"matches": [_entry("age", "30", 22, 24)]}}) + "\n```"

    matches = parse_matches(payload, TEXT)

    assert [m.property for m in matches] == ["age"]


def test_out_of_range_spans_are_repaired_or_dropped():
    payload = json.dumps(
        {
            "matches": [
                _entry("name", "john smith", 100, 110),
                _entry("city", "Paris", 50, 55),
                _entry("age", "30", 24, 22),
            ]
        }
    )

    matches = parse_matches(payload, TEXT)

    assert [m.property for m in matches] == ["name", "age"]
    assert (matches[0].position.start, matches[0].position.end) == (6, 16)
    assert (matches[1].position.start, matches[1].position.end) == (22, 24)


def test_malformed_entries_are_dropped(caplog: pytest.LogCaptureFixture):
    payload = json.dumps(
        {
            "matches": [
                "name",
                _entry("name", "John Smith", 6, 16, confidence="high"),
                _entry("age", "30", 22, 24, match_type="fuzzy"),
                _entry("name", "John Smith", 6, 16, confidence=80),
            ]
        }
    )

    matches = parse_matches(payload, TEXT)

    assert len(matches) == 1
    assert matches[0].confidence == 80
    assert "Dropping match" in caplog.text


def test_sort_matches_is_stable():
    payload = json.dumps(
        {"matches": [_entry("a", "x", 0, 1, 50), _entry("b", "x", 0, 1, 90), _entry("c", "x", 0, 1, 50)]}
    )
    ordered = sort_matches(parse_matches(payload, "x"))
    assert [m.property for m in ordered] == ["b", "a", "c"]


def test_analyze_requires_configuration():
    with pytest.raises(NotConfiguredError):
        analyze_text(TEXT, '{"name": ""}', CompletionService())


def test_analyze_sends_canonical_schema(mock_service: CompletionService):
    mock_service.adapter.enqueue(json.dumps({"matches": [_entry("name", "John Smith", 6, 16, 95)]}))

    matches = analyze_text(TEXT, '{\n  "name": "",\n  "age": 0\n}', mock_service)

    assert len(matches) == 1 and isinstance(matches[0], MatchResult)
    call = mock_service.adapter.calls[0]
    assert call["options"].json_mode is True
    assert call["options"].temperature == 0.2
    user = next(m.content for m in call["messages"] if m.role == "user")
    assert '{"name":"","age":0}' in user
    assert TEXT in user


def test_analyze_with_default_mock_reply(mock_service: CompletionService):
    matches = analyze_text("I moved to Paris last year", '{"city": "Paris", "country": ""}', mock_service)

    assert [(m.property, m.matched_text, m.match_type) for m in matches] == [("city", "Paris", "exact")]


def test_analyze_surfaces_invalid_payload(mock_service: CompletionService):
    mock_service.adapter.enqueue("not json")
    with pytest.raises(InvalidResponseFormatError):
        analyze_text(TEXT, '{"name": ""}', mock_service)


@pytest.mark.parametrize("confidence", ["Infinity", "-Infinity", "NaN", "1e400"])
def test_non_finite_confidence_is_dropped(confidence: str):
    good = json.dumps(_entry("age", "30", 22, 24))
    bad = json.dumps(_entry("name", "John Smith", 6, 16)).replace('"confidence": 90', f'"confidence": {confidence}')
    payload = '{"matches": [' + bad + ", " + good + "]}"

    matches = parse_matches(payload, TEXT)

    assert [m.property for m in matches] == ["age"]


def test_non_finite_confidence_through_analyze(mock_service: CompletionService):
    bad = json.dumps(_entry("name", "John Smith", 6, 16)).replace('"confidence": 90', '"confidence": Infinity')
    mock_service.adapter.enqueue('{"matches": [' + bad + "]}")

    assert analyze_text(TEXT, '{"name": ""}', mock_service) == []


def test_case_insensitive_repair_indexes_original_text():
    text = "İstanbul office, contact ALICE"
    payload = json.dumps({"matches": [_entry("contact", "alice", 500, 505)]})

    matches = parse_matches(payload, text)

    span = matches[0].position
    assert text[span.start : span.end] == "ALICE"
