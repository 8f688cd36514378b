#!/usr/bin/env python3
"""
Normalization diagnostics: warnings and the confidence score.

Every corrective action taken by the normalizer records one warning with a
category. Warnings are append-only and never deduplicated; repeating the same
message for several segments is how severity shows up. Confidence starts at
1.0 and loses the category penalty for each warning.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from imagetofit.constants import WARNING_PENALTIES


@dataclass
class Diagnostics:
    """Ordered warnings plus the category each one was recorded under."""
    warnings: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)

    def warn(self, category: str, message: str):
        if category not in WARNING_PENALTIES:
            raise KeyError(f"Unknown warning category: {category}")
        self.warnings.append(message)
        self.categories.append(category)

    def __len__(self) -> int:
        return len(self.warnings)

    def confidence(self, penalties: Optional[Dict[str, float]] = None) -> float:
        return score_confidence(self.categories, penalties)


def score_confidence(categories: List[str], penalties: Optional[Dict[str, float]] = None) -> float:
    """
    Turn warning categories into a confidence in [0, 1].

    Zero warnings gives exactly 1.0. Penalties are clamped to >= 0 so adding
    a warning can never raise the score.
    """
    if not categories:
        return 1.0
    table = penalties if penalties is not None else WARNING_PENALTIES
    total = sum(max(0.0, float(table.get(c, WARNING_PENALTIES.get(c, 0.0)))) for c in categories)
    return round(max(0.0, 1.0 - total), 4)
