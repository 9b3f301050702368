# backend/app/scoring.py

import re
from typing import Any, Dict, Iterable, List

from .models import CompositionAnalysis, ElementType, Layer

FULL_MARK = 100

# Contrast is a free-text level; anything that is not High/Medium charts as low.
CONTRAST_SCORES = {"high": 90, "medium": 60}
LOW_CONTRAST_SCORE = 30

EYE_CONTACT_SCORE = 100
NO_EYE_CONTACT_SCORE = 20

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def _clamp100(x: float) -> float:
    return round(max(0.0, min(float(FULL_MARK), x)), 1)


def contrast_score(level: str) -> int:
    return CONTRAST_SCORES.get((level or "").strip().lower(), LOW_CONTRAST_SCORE)


def build_score_map(analysis: CompositionAnalysis) -> List[Dict[str, Any]]:
    """
    Series for the "score map" chart, every axis on a 0–100 scale.
    """
    return [
        {"subject": "Rule of 3rds", "score": _clamp100(analysis.rule_of_thirds_score), "full_mark": FULL_MARK},
        {"subject": "Balance", "score": _clamp100(analysis.visual_balance_score), "full_mark": FULL_MARK},
        {"subject": "Contrast", "score": contrast_score(analysis.contrast_level), "full_mark": FULL_MARK},
        {
            "subject": "Eye Contact",
            "score": EYE_CONTACT_SCORE if analysis.eye_contact else NO_EYE_CONTACT_SCORE,
            "full_mark": FULL_MARK,
        },
    ]


def category_breakdown(layers: Iterable[Layer]) -> Dict[str, int]:
    """Layer count per element type, every type present (zeros included)."""
    counts = {e.value: 0 for e in ElementType}
    for layer in layers:
        counts[layer.category.value] += 1
    return counts


def palette(analysis: CompositionAnalysis) -> List[str]:
    """Dominant colors as lowercase #rrggbb; entries that aren't hex are dropped."""
    colors: List[str] = []
    for raw in analysis.dominant_colors:
        match = _HEX_RE.match(str(raw).strip())
        if not match:
            continue
        digits = match.group(1).lower()
        if len(digits) == 3:
            digits = "".join(c * 2 for c in digits)
        colors.append(f"#{digits}")
    return colors


def build_chart_data(analysis: CompositionAnalysis, layers: Iterable[Layer]) -> Dict[str, Any]:
    return {
        "score_map": build_score_map(analysis),
        "category_counts": category_breakdown(layers),
        "palette": palette(analysis),
    }
