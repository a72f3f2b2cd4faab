from __future__ import annotations

import json

import pytest

from ecoscan.shared import classify_contract as contract


def test_categories_are_the_five_waste_classes_in_order():
    assert contract.CATEGORIES == ("Plastic", "Paper", "Organic", "Metal", "Glass")


def test_prompts_list_every_category():
    system = contract.build_system_prompt()
    user = contract.build_user_prompt()

    for label in contract.CATEGORIES:
        assert label in system
        assert label in user
    assert '"category"' in system
    assert '"confidence"' in system
    assert '"reasoning"' in system
    assert "Plastic, Paper, Organic, Metal, or Glass" in user


def test_strict_parse_normalizes_category_case():
    text = '{"category":"plastic","confidence":0.92,"reasoning":"bottle shape"}'

    result = contract.normalize_completion(text)

    assert result == {"category": "Plastic", "confidence": 0.92, "reasoning": "bottle shape"}
    assert contract.extract_fields(text)[1] == "strict"


def test_embedded_object_is_extracted_and_confidence_clamped():
    text = 'Sure! Here is my answer: {"category":"Glass","confidence":1.4,"reasoning":"clear bottle"}'

    result = contract.normalize_completion(text)

    assert result == {"category": "Glass", "confidence": 1.0, "reasoning": "clear bottle"}
    assert contract.extract_fields(text)[1] == "embedded"


def test_embedded_object_inside_markdown_fence():
    text = '```json\n{\n  "category": "ORGANIC",\n  "confidence": 0.81,\n  "reasoning": "banana peel"\n}\n```'

    result = contract.normalize_completion(text)

    assert result["category"] == "Organic"
    assert result["confidence"] == pytest.approx(0.81)


def test_keyword_fallback_on_unparseable_text():
    text = "I think this is made of METAL and recyclable"

    result = contract.normalize_completion(text)

    assert result == {"category": "Metal", "confidence": 0.75, "reasoning": text}
    assert contract.extract_fields(text)[1] == "keyword"


def test_keyword_fallback_uses_category_order_not_position():
    # "glass" appears first in the text, but Paper comes first in the set.
    text = "glass jar wrapped in paper"

    assert contract.normalize_completion(text)["category"] == "Paper"


def test_keyword_fallback_defaults_to_first_category():
    result = contract.normalize_completion("I cannot tell what this is.")

    assert result["category"] == "Plastic"
    assert result["confidence"] == 0.75


def test_keyword_fallback_truncates_reasoning_to_200_chars():
    text = "metal " * 100

    result = contract.normalize_completion(text)

    assert result["reasoning"] == text[:200]
    assert len(result["reasoning"]) == 200


def test_broken_embedded_object_falls_back_to_keywords():
    text = 'Answer: {"category": "Glass", "confidence": 0.9,, } glass'

    result = contract.normalize_completion(text)

    assert result["category"] == "Glass"
    assert result["confidence"] == 0.75


def test_object_without_string_category_is_not_accepted():
    text = '{"confidence": 0.9, "reasoning": "looks like paper"}'

    fields, tier = contract.extract_fields(text)

    assert tier == "keyword"
    assert fields["category"] == "Paper"


def test_unknown_category_passes_through_unchanged():
    text = '{"category":"Cardboard","confidence":0.7,"reasoning":"box"}'

    result = contract.normalize_completion(text)

    assert result["category"] == "Cardboard"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (-0.3, 0.0),
        (7, 1.0),
        (0, 0.0),
        ("0.66", 0.66),
        ("high", 0.8),
        (None, 0.8),
        (True, 0.8),
        ([0.9], 0.8),
    ],
)
def test_confidence_is_always_clamped(raw, expected):
    text = json.dumps({"category": "Metal", "confidence": raw, "reasoning": "can"})

    confidence = contract.normalize_completion(text)["confidence"]

    assert confidence == pytest.approx(expected)
    assert 0.0 <= confidence <= 1.0


def test_missing_confidence_defaults():
    result = contract.normalize_completion('{"category":"Paper","reasoning":"newspaper"}')

    assert result["confidence"] == 0.8


def test_nan_and_infinite_confidence():
    assert contract.clamp_confidence(float("nan")) == 0.8
    assert contract.clamp_confidence(float("inf")) == 1.0
    assert contract.clamp_confidence(float("-inf")) == 0.0
    assert contract.clamp_confidence(10**400) == 1.0
    assert contract.clamp_confidence(-(10**400)) == 0.0


def test_huge_integer_confidence_in_completion_is_clamped():
    text = '{"category":"Metal","confidence":' + "9" * 400 + ',"reasoning":"x"}'

    result = contract.normalize_completion(text)

    assert result == {"category": "Metal", "confidence": 1.0, "reasoning": "x"}


@pytest.mark.parametrize("reasoning", [None, "", "   "])
def test_blank_reasoning_gets_default(reasoning):
    payload = {"category": "Paper", "confidence": 0.9}
    if reasoning is not None:
        payload["reasoning"] = reasoning

    result = contract.normalize_completion(json.dumps(payload))

    assert result["reasoning"] == contract.DEFAULT_REASONING


def test_non_string_reasoning_is_stringified():
    result = contract.normalize_completion('{"category":"Glass","confidence":0.9,"reasoning":42}')

    assert result["reasoning"] == "42"


def test_normalize_category_ignores_surrounding_whitespace():
    assert contract.normalize_category("  gLaSs ") == "Glass"
    assert contract.normalize_category("Styrofoam") == "Styrofoam"


def test_normalizer_never_raises_on_odd_input():
    for text in ["", "{", "}", "[1, 2]", "null", "{}" * 3, "[" * 5000]:
        result = contract.normalize_completion(text)
        assert result["category"] in contract.CATEGORIES
        assert 0.0 <= result["confidence"] <= 1.0
        assert result["reasoning"]


def test_normalizer_is_idempotent():
    for text in [
        '{"category":"plastic","confidence":0.92,"reasoning":"bottle shape"}',
        'Result: {"category":"metal","confidence":-2}',
        "Probably organic waste, maybe paper.",
    ]:
        first = contract.normalize_completion(text)
        second = contract.normalize_completion(text)
        assert json.dumps(first) == json.dumps(second)
