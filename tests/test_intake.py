"""边界解析测试。"""

import json

import pytest

from storyloom.errors import DeltaParseError
from storyloom.intake import extract_json, parse_analyst_result, parse_delta, parse_structure_result
from storyloom.models.delta import NarrativeDelta


def test_extract_json_from_code_block():
    text = '说明文字\n```json\n{"inventoryAdded": ["火把"]}\n```\n结尾'
    assert extract_json(text) == {"inventoryAdded": ["火把"]}


def test_extract_json_from_surrounding_text():
    assert extract_json('好的：{"a": 1} 以上') == {"a": 1}


def test_extract_json_fence_with_other_language_tag():
    assert extract_json("```jsonc\n{\"a\": [1, 2]}\n```") == {"a": [1, 2]}


def test_extract_json_unclosed_fence_falls_back_to_braces():
    """代码块没闭合时按花括号定位。"""
    assert extract_json('```json\n{"inventoryAdded": ["火把"]}') == {"inventoryAdded": ["火把"]}


def test_extract_json_raises_when_nothing_parses():
    with pytest.raises(json.JSONDecodeError):
        extract_json("```\n不是 JSON\n```")


def test_parse_delta_accepts_json_text_and_aliases():
    delta = parse_delta('{"newLocation": "港口", "inventoryAdded": ["绳子"], "unknownField": 1}')
    assert delta.current_location == "港口"
    assert delta.inventory_added == ["绳子"]


def test_parse_delta_accepts_snake_case():
    delta = parse_delta({"inventory_added": ["绳子"], "threads_resolved": ["td-1"]})
    assert delta.threads_resolved == ["td-1"]


def test_parse_delta_passes_models_through():
    delta = NarrativeDelta()
    assert parse_delta(delta) is delta


def test_tagged_strings_split_at_boundary():
    delta = parse_delta({"threatsAdded": ["THREAT_wolves: 狼群"], "constraintsAdded": ["夜里看不清"]})
    assert delta.threats_added[0].text == "狼群"
    assert delta.threats_added[0].alias == "THREAT_wolves"
    assert delta.constraints_added[0].alias == ""


def test_character_canon_facts_list_form_merges():
    delta = parse_delta(
        {
            "newCharacterCanonFacts": [
                {"characterName": "Elena", "facts": ["A"]},
                {"characterName": "Elena", "facts": ["B"]},
            ]
        }
    )
    assert delta.new_character_canon_facts == {"Elena": ["A", "B"]}


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "[1, 2]",
        42,
        {"inventoryAdded": "火把"},
        {"inventoryRemoved": [1, 2]},
        {"threadsAdded": [{"text": "x", "urgency": "EXTREME"}]},
        {"newCharacterCanonFacts": [{"facts": ["x"]}]},
    ],
)
def test_parse_delta_rejects_malformed(raw):
    with pytest.raises(DeltaParseError):
        parse_delta(raw)


def test_parse_analyst_result_none_is_empty():
    result = parse_analyst_result(None)
    assert not result.beat_concluded
    assert result.promises_detected == []


def test_parse_analyst_result():
    result = parse_analyst_result(
        {
            "beatConcluded": True,
            "beatResolution": "完成",
            "invalidatedBeatIds": ["2.1"],
            "promisePayoffAssessments": [{"promiseId": "pr-1", "satisfactionLevel": "RUSHED"}],
        }
    )
    assert result.beat_concluded
    assert result.invalidated_beat_ids == ["2.1"]
    assert result.promise_payoff_assessments[0].satisfaction_level == "RUSHED"


def test_parse_analyst_rejects_bad_satisfaction():
    with pytest.raises(DeltaParseError):
        parse_analyst_result({"threadPayoffAssessments": [{"threadId": "td-1", "satisfactionLevel": "MEH"}]})


def test_parse_structure_result_keeps_raw_text():
    raw = '```json\n{"overallTheme": "t", "acts": [{"name": "一", "entryCondition": "c", "beats": [{"description": "b"}]}]}\n```'
    result = parse_structure_result(raw)
    assert result.raw_response == raw
    assert result.acts[0].entry_condition == "c"
    assert result.acts[0].beats[0].objective == ""
