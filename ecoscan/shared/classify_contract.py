"""Waste classification contract helpers.

This module owns the closed category set and turns a raw model completion into
the `{category, confidence, reasoning}` payload the web UI renders.
It is intentionally stdlib-only so it can be imported anywhere without heavy deps.

Extraction order (first success wins):
  1) strict:   the whole completion is a JSON object
  2) embedded: the greedy `{...}` substring is a JSON object
  3) keyword:  first category label mentioned in the text (never fails)
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, Literal, Optional, Tuple, TypedDict


LOGGER = logging.getLogger(__name__)

# Order matters: keyword fallback scans in this order and defaults to the first.
CATEGORIES: Tuple[str, ...] = ("Plastic", "Paper", "Organic", "Metal", "Glass")

DEFAULT_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.75
FALLBACK_REASONING_CHARS = 200
DEFAULT_REASONING = "Classification based on visual analysis"

ExtractionTier = Literal["strict", "embedded", "keyword"]

_EMBEDDED_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class ClassificationResult(TypedDict):
    category: str
    confidence: float
    reasoning: str


class ErrorResponse(TypedDict, total=False):
    error: str
    details: str


def _category_list() -> str:
    return ", ".join(CATEGORIES[:-1]) + f", or {CATEGORIES[-1]}"


def build_system_prompt() -> str:
    return (
        "You are an expert waste classification AI. Classify waste items into exactly one of "
        f"these {len(CATEGORIES)} categories: {_category_list()}. "
        'Respond ONLY with a JSON object in this exact format: {"category": "CategoryName", '
        '"confidence": 0.95, "reasoning": "brief explanation"}. Be confident and decisive.'
    )


def build_user_prompt() -> str:
    return (
        f"Classify this waste item into one of these categories: {_category_list()}. "
        "Provide your confidence level (0-1) and brief reasoning."
    )


def _parse_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse `text` as a JSON object carrying a string category, else None."""

    try:
        raw = json.loads(text)
    except (ValueError, RecursionError):
        return None
    if not isinstance(raw, dict):
        return None
    if not isinstance(raw.get("category"), str):
        return None
    return raw


def _keyword_fields(text: str) -> Dict[str, Any]:
    lowered = text.lower()
    category = next((c for c in CATEGORIES if c.lower() in lowered), CATEGORIES[0])
    return {
        "category": category,
        "confidence": FALLBACK_CONFIDENCE,
        "reasoning": text[:FALLBACK_REASONING_CHARS],
    }


def extract_fields(text: str) -> Tuple[Dict[str, Any], ExtractionTier]:
    """Return the raw (un-normalized) fields and the tier that produced them."""

    parsed = _parse_object(text)
    if parsed is not None:
        return parsed, "strict"

    match = _EMBEDDED_OBJECT_RE.search(text)
    if match:
        parsed = _parse_object(match.group(0))
        if parsed is not None:
            return parsed, "embedded"

    return _keyword_fields(text), "keyword"


def normalize_category(category: str) -> str:
    """Canonical label for a case-insensitive match; unknown labels pass through."""

    key = category.strip().lower()
    for label in CATEGORIES:
        if label.lower() == key:
            return label
    return category


def clamp_confidence(value: Any) -> float:
    # bool is an int subclass.
    if value is None or isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        confidence = float(value)
    except OverflowError:
        # An int too large for a float is still out of range.
        return 1.0 if value > 0 else 0.0
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if math.isnan(confidence):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, confidence))


def normalize_reasoning(value: Any) -> str:
    if value is None:
        return DEFAULT_REASONING
    reasoning = value if isinstance(value, str) else str(value)
    if not reasoning.strip():
        return DEFAULT_REASONING
    return reasoning


def normalize_completion(text: str) -> ClassificationResult:
    """Turn one model completion into a ClassificationResult. Never raises."""

    fields, tier = extract_fields(text)
    if tier == "keyword":
        LOGGER.warning("Failed to parse AI response, using keyword fallback: %r", text[:FALLBACK_REASONING_CHARS])
    else:
        LOGGER.debug("Parsed AI response (%s)", tier)

    return {
        "category": normalize_category(str(fields["category"])),
        "confidence": clamp_confidence(fields.get("confidence")),
        "reasoning": normalize_reasoning(fields.get("reasoning")),
    }
