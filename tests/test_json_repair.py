"""
Tests for JSON extraction and repair of model output
"""

import pytest

from utils.parsing.json import extract_json_object, iter_json_objects, repair_and_parse_json

# Inputs that must parse into {"roast": ..., "score": ...}
REPAIRABLE = [
    ("valid json", '{"roast": "Test roast", "score": 7}'),
    ("trailing comma", '{"roast": "Test roast", "score": 7,}'),
    (
        "single-line comment",
        '{"roast": "Test roast", // model chatter\n"score": 7}',
    ),
    ("multi-line comment", '{"roast": "Test roast", /* comment */ "score": 7}'),
    ("markdown code block", '```json\n{"roast": "Test roast", "score": 7}\n```'),
    ("surrounding prose", 'Here is my analysis:\n{"roast": "Test roast", "score": 7}\nHope it helps!'),
    ("single quotes", "{'roast': 'Test roast', 'score': 7}"),
    ("placeholder braces in prose", 'Look at the {hero} section:\n{"roast": "Test roast", "score": 7}'),
]


@pytest.mark.parametrize("name,text", REPAIRABLE, ids=[name for name, _ in REPAIRABLE])
def test_repairable_inputs(name, text):
    result = repair_and_parse_json(text)
    assert result["roast"] == "Test roast"
    assert result["score"] == 7


def test_url_with_double_slash_survives_comment_cleaning():
    text = '{"roast": "See https://example.com", "score": 3,}'
    assert repair_and_parse_json(text)["roast"] == "See https://example.com"


def test_extract_ignores_braces_inside_strings():
    text = 'prefix {"roast": "a } b { c", "nested": {"x": 1}} suffix {"other": 2}'
    assert extract_json_object(text) == '{"roast": "a } b { c", "nested": {"x": 1}}'


def test_extract_skips_unbalanced_candidates():
    assert extract_json_object('{ broken { "a": 1 }') == '{ "a": 1 }'


@pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]"])
def test_missing_object_raises_value_error(text):
    with pytest.raises(ValueError):
        repair_and_parse_json(text)


def test_candidates_are_yielded_in_order():
    text = 'The {hero} and {cta} fail. {"roast": "Ouch", "score": 2}'
    assert list(iter_json_objects(text)) == ["{hero}", "{cta}", '{"roast": "Ouch", "score": 2}']


def test_later_object_is_used_when_earlier_ones_do_not_parse():
    text = 'Sections {hero} {footer nav}\n```json\n{"roast": "Bland", "score": 4,}\n```'
    assert repair_and_parse_json(text) == {"roast": "Bland", "score": 4}


def test_only_unparseable_candidates_raise_value_error():
    with pytest.raises(ValueError, match="Failed to parse JSON"):
        repair_and_parse_json("Fix the {hero} and the {cta}")
