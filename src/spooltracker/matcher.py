"""Score extracted filament usage against the spool inventory.

Scores are tiered so that a stronger signal always outranks any
combination of weaker ones:

========================  ======
exact colour hex          90-100
product code              60-85
material substring        30-50
========================  ======

Within a tier each additional weaker signal adds 5 points. Below the
colour tier, up to 20 more points rank spools by how close their colour
is to the usage colour (RGB distance). Colour closeness alone never makes
a match: spools with no matching signal are left out entirely.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Iterable, Protocol

from spooltracker.models import (
    Deduction,
    FilamentAssignment,
    FilamentUsage,
    MatchSignal,
    ParsedPrintFile,
    Spool,
    SpoolMatch,
)

log = logging.getLogger(__name__)

COLOR_SCORE = 90
PRODUCT_CODE_SCORE = 60
MATERIAL_SCORE = 30
SECONDARY_BONUS = 5
# Must stay below the gap to the next tier up.
CLOSENESS_BONUS = 20

_MAX_RGB_DISTANCE = math.sqrt(3 * 255**2)

# Below this many grams a spool is considered used up after a deduction.
EMPTY_THRESHOLD = 50.0


def normalize_hex(value: str | None) -> str | None:
    """``"#FF6A13"``, ``"ff6a13"`` and ``"FF6A13FF"`` all become ``"ff6a13"``.

    Colour names pass through lower-cased.
    """
    if not value:
        return None
    v = value.strip().lower().lstrip("#")
    if len(v) == 8 and re.fullmatch(r"[0-9a-f]{8}", v):
        v = v[:6]  # drop alpha
    return v or None


def _rgb(value: str | None) -> tuple[int, int, int] | None:
    v = normalize_hex(value)
    if v is None or not re.fullmatch(r"[0-9a-f]{6}", v):
        return None
    return int(v[0:2], 16), int(v[2:4], 16), int(v[4:6], 16)


def color_closeness(a: str | None, b: str | None) -> float | None:
    """1.0 for identical colours down to 0.0 for black vs white.

    None when either side is not a hex colour.
    """
    rgb_a, rgb_b = _rgb(a), _rgb(b)
    if rgb_a is None or rgb_b is None:
        return None
    return 1.0 - math.dist(rgb_a, rgb_b) / _MAX_RGB_DISTANCE


def _signals(usage: FilamentUsage, spool: Spool) -> list[MatchSignal]:
    """Signals shared by usage and spool, strongest first."""
    found: list[MatchSignal] = []
    usage_hex = normalize_hex(usage.color_hex)
    if usage_hex and usage_hex == normalize_hex(spool.color_hex):
        found.append("color")
    if usage.product_code and spool.product_code and (
        usage.product_code.strip() == spool.product_code.strip()
    ):
        found.append("product_code")
    if usage.material and spool.material_name and (
        usage.material.lower() in spool.material_name.lower()
    ):
        found.append("material")
    return found


_TIER_SCORES = {
    "color": COLOR_SCORE,
    "product_code": PRODUCT_CODE_SCORE,
    "material": MATERIAL_SCORE,
}


def _tier_score(signals: list[MatchSignal], usage: FilamentUsage, spool: Spool) -> int:
    total = _TIER_SCORES[signals[0]] + SECONDARY_BONUS * (len(signals) - 1)
    if signals[0] != "color":
        closeness = color_closeness(usage.color_hex, spool.color_hex)
        if closeness is not None:
            total += round(CLOSENESS_BONUS * closeness)
    return total


def score(usage: FilamentUsage, spool: Spool) -> int:
    """Return the match score of ``spool`` for ``usage``; 0 means no match."""
    signals = _signals(usage, spool)
    return _tier_score(signals, usage, spool) if signals else 0


def match_usage(
    usage: FilamentUsage,
    spools: Iterable[Spool],
    *,
    include_empty: bool = False,
) -> list[SpoolMatch]:
    """Rank the spools that could have supplied ``usage``, best first.

    Equal scores keep inventory order. A spool holding less than the usage
    weight is still returned, flagged ``insufficient_stock``.
    """
    matches = []
    for spool in spools:
        if spool.is_empty and not include_empty:
            continue
        signals = _signals(usage, spool)
        if not signals:
            continue
        remaining = spool.current_weight_grams or 0.0
        matches.append(SpoolMatch(
            spool=spool,
            match_score=_tier_score(signals, usage, spool),
            matched_on=signals[0],
            insufficient_stock=remaining < usage.weight_grams,
        ))
    matches.sort(key=lambda m: m.match_score, reverse=True)
    return matches


def best_match(
    usage: FilamentUsage, spools: Iterable[Spool], *, include_empty: bool = False
) -> SpoolMatch | None:
    matches = match_usage(usage, spools, include_empty=include_empty)
    return matches[0] if matches else None


def assign_spools(
    parsed: ParsedPrintFile,
    spools: list[Spool],
    *,
    include_empty: bool = False,
) -> list[FilamentAssignment]:
    """Pair every usage with its candidates and pre-select the best one."""
    assignments = []
    for usage in parsed.filament_usages:
        matches = match_usage(usage, spools, include_empty=include_empty)
        assignments.append(FilamentAssignment(
            usage=usage,
            matches=matches,
            selected_spool_id=matches[0].spool.id if matches else None,
            deduct_grams=usage.weight_grams,
        ))
        if not matches:
            log.info("No spool matches %s", usage.type or usage.color_hex or "usage")
    return assignments


def plan_deductions(
    assignments: Iterable[FilamentAssignment],
    spools: list[Spool],
    *,
    empty_threshold: float = EMPTY_THRESHOLD,
) -> list[Deduction]:
    """Work out the new spool weights for the confirmed assignments.

    Assignments without a spool or with nothing to deduct are skipped.
    Several assignments on one spool deduct cumulatively. Weights never go
    below zero.
    """
    by_id = {s.id: s for s in spools}
    running: dict[int, float] = {}
    deductions = []
    for a in assignments:
        if a.selected_spool_id is None or a.deduct_grams <= 0:
            continue
        spool = by_id.get(a.selected_spool_id)
        if spool is None:
            raise ValueError(f"Spool not found: {a.selected_spool_id}")
        previous = running.get(spool.id, spool.current_weight_grams or 0.0)
        new_weight = max(0.0, previous - a.deduct_grams)
        running[spool.id] = new_weight
        deductions.append(Deduction(
            spool_id=spool.id,
            grams=a.deduct_grams,
            previous_weight=previous,
            new_weight=new_weight,
            mark_empty=new_weight < empty_threshold,
        ))
    return deductions


class SpoolUpdater(Protocol):
    """Whatever persists spool weights (REST client, database, ...)."""

    def update_weight(self, spool_id: int, new_weight: float, mark_empty: bool) -> None: ...


def commit_deductions(deductions: Iterable[Deduction], updater: SpoolUpdater) -> int:
    """Hand each deduction to ``updater``. Returns the number committed."""
    count = 0
    for d in deductions:
        log.info(
            "Spool %s: %.1fg -> %.1fg%s",
            d.spool_id, d.previous_weight, d.new_weight, " (empty)" if d.mark_empty else "",
        )
        updater.update_weight(d.spool_id, d.new_weight, d.mark_empty)
        count += 1
    return count
