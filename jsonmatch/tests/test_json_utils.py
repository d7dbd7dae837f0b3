from __future__ import annotations

import pytest

from jsonmatch.provider.json_utils import (
    extract_and_validate,
    find_matching_brace,
    parse_json_text,
    strip_markdown_json,
    unwrap_payload,
)
from jsonmatch.schemas import MatchResponseV1


def test_parse_plain_json_has_no_warnings():
    data, warnings = parse_json_text('{"matches": []}')
    assert data == {"matches": []}
    assert warnings == []


def test_parse_fenced_json_is_repaired():
    data, warnings = parse_json_text('Sure!\n```json\n{"matches": [1]}\n```\nDone.')
    assert data == {"matches": [1]}
    assert warnings == ["json_repaired_simple"]


def test_document_keys_are_never_stripped():
    data, warnings = parse_json_text('{"thoughts": "", "scratchpad": "x"}')
    assert unwrap_payload(data, ["thoughts", "scratchpad"]) == {"thoughts": "", "scratchpad": "x"}
    assert warnings == []


@pytest.mark.parametrize("raw", ["", "   ", None, "no json here", "{ broken"])
def test_unrecoverable_payloads_raise(raw):
    with pytest.raises(ValueError):
        parse_json_text(raw)


def test_strip_markdown_prefers_first_container():
    assert strip_markdown_json('x [1, {"a": 2}] y') == '[1, {"a": 2}]'
    assert strip_markdown_json('x {"a": [1]} y') == '{"a": [1]}'


def test_find_matching_brace_ignores_braces_in_strings():
    text = '{"a": "}"} tail'
    assert find_matching_brace(text, 0) == 9
    assert find_matching_brace("{", 0) == -1


def test_unwrap_payload_peels_wrappers():
    assert unwrap_payload({"result": {"matches": []}}, ["matches"]) == {"matches": []}
    assert unwrap_payload({"response": '{"matches": [1]}'}, ["matches"]) == {"matches": [1]}
    assert unwrap_payload({"matches": [], "note": "hmm"}, ["matches"]) == {"matches": [], "note": "hmm"}
    assert unwrap_payload({"other": 1}, ["matches"]) == {"other": 1}


def test_extract_and_validate_flags_repair():
    obj, warnings = extract_and_validate('Here you go: {"matches": [{"x": 1}]} thanks', MatchResponseV1)
    assert obj.matches == [{"x": 1}]
    assert "json_repaired_simple" in warnings
