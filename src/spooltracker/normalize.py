"""Canonicalise raw extracted usages before they leave an extractor."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Iterable

from spooltracker.formats import first_word
from spooltracker.models import Confidence, FilamentUsage

log = logging.getLogger(__name__)


def _positive(value: float | None) -> float | None:
    if value is None or not math.isfinite(value) or value <= 0:
        return None
    return value


def _confidence(usage: FilamentUsage) -> Confidence:
    """Clamp the extractor's confidence so it agrees with the data present.

    Classified (type and colour) usages are at least medium; unclassified
    ones are at most medium. Estimated weights keep what the extractor set.
    """
    confidence = usage.match_confidence
    if usage.estimated:
        return confidence
    has_type = bool(usage.type or usage.material)
    has_colour = bool(usage.color_hex or usage.color)
    if has_type and has_colour and confidence == "low":
        return "medium"
    if not has_type and not has_colour and confidence == "high":
        return "medium"
    return confidence


def normalize_usages(usages: Iterable[FilamentUsage]) -> list[FilamentUsage]:
    """Drop empty rows and fill derived fields, keeping discovery order.

    Returns new objects; the inputs are not modified.
    """
    result = []
    for usage in usages:
        weight = _positive(usage.weight_grams)
        if weight is None:
            log.debug("Dropping usage with no weight: %s", usage)
            continue
        colour_hex = usage.color_hex.strip() if usage.color_hex else None
        normalized = replace(
            usage,
            weight_grams=weight,
            length_meters=_positive(usage.length_meters),
            material=usage.material or first_word(usage.type),
            color_hex=colour_hex or None,
        )
        normalized.match_confidence = _confidence(normalized)
        result.append(normalized)
    return result
