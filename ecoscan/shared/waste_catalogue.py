"""Per-category display data served to the web UI."""

from __future__ import annotations

import math
from typing import Dict, List, TypedDict

from ecoscan.shared.classify_contract import CATEGORIES


class CategoryInfo(TypedDict):
    name: str
    disposal_tip: str


DISPOSAL_TIPS: Dict[str, str] = {
    "Plastic": "Rinse clean and place in the plastic recycling bin. Check for recycling symbols.",
    "Paper": "Keep dry and place in paper recycling. Remove any plastic or metal attachments.",
    "Organic": "Perfect for composting! Helps create nutrient-rich soil for gardens.",
    "Metal": "Rinse cans and place in metal recycling. Can be recycled indefinitely!",
    "Glass": "Rinse and recycle. Glass can be recycled endlessly without quality loss.",
}
DEFAULT_DISPOSAL_TIP = "Please dispose responsibly according to local guidelines."


def disposal_tip(category: str) -> str:
    return DISPOSAL_TIPS.get(category, DEFAULT_DISPOSAL_TIP)


def confidence_percent(confidence: float) -> int:
    # Half-up rounding so 0.895 reads as 90%, matching what the UI shows.
    return int(math.floor(float(confidence) * 100.0 + 0.5))


def confidence_level(confidence: float) -> str:
    percent = confidence_percent(confidence)
    if percent >= 90:
        return "Very High"
    if percent >= 75:
        return "High"
    return "Moderate"


def list_categories() -> List[CategoryInfo]:
    return [{"name": name, "disposal_tip": disposal_tip(name)} for name in CATEGORIES]
