"""Format sniffing and the flat ``key = value`` metadata parser.

Slicers write the same filament facts in several text shapes: JSON
documents, XML, and flat ``key = value`` (or ``key: value``) blocks where a
comma-separated value holds one entry per filament slot.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Literal

from spooltracker.models import FilamentUsage

log = logging.getLogger(__name__)

TextFormat = Literal["json", "xml", "keyvalue", "unknown"]

_KV_LINE = re.compile(r"^\s*;?\s*([^=:]+?)\s*[=:]\s*(.*?)\s*$")
_PRINT_EXTENSIONS = re.compile(r"(\.gcode)?\.(3mf|gcode|gco)$", re.IGNORECASE)


def detect_format(text: str) -> TextFormat:
    """Guess which structured format a metadata blob is written in."""
    stripped = text.lstrip("\ufeff \t\r\n")
    if not stripped:
        return "unknown"
    if stripped[0] in "{[":
        try:
            json.loads(stripped)
            return "json"
        except ValueError:
            pass
    if stripped.startswith("<"):
        return "xml"
    if any(_KV_LINE.match(line) for line in stripped.splitlines()):
        return "keyvalue"
    return "unknown"


def parse_duration(value: str | int | float) -> int:
    """Convert a print time to seconds.

    Accepts bare integer seconds or strings like ``"1d 2h 30m 45s"`` with
    any subset of the units. Returns 0 when nothing is recognised or the
    number is not finite.
    """
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return 0
        return max(int(value), 0)
    text = value.strip()
    if re.fullmatch(r"\d+", text):
        return int(text)

    secs = 0
    for unit, factor in (("d", 86400), ("h", 3600), ("m", 60), ("s", 1)):
        if m := re.search(rf"(\d+)\s*{unit}", text, re.IGNORECASE):
            secs += int(m.group(1)) * factor
    return secs


def strip_extension(filename: str) -> str:
    """Return the file's base name without its print-file extension."""
    name = PurePath(filename).name
    stripped = _PRINT_EXTENSIONS.sub("", name)
    if stripped == name and "." in name:
        stripped = name.rsplit(".", 1)[0]
    return stripped


def first_word(text: str | None) -> str | None:
    """Coarse material family from a profile name ("PLA Basic" -> "PLA")."""
    if not text or not text.strip():
        return None
    return text.split()[0]


def parse_float(text: str) -> float | None:
    """Parse a number, tolerating a decimal comma. None when unparseable."""
    try:
        value = float(text.strip().strip("\"'").replace(",", "."))
    except ValueError:
        return None
    if value != value:  # NaN
        return None
    return value


def _normalize_key(key: str) -> str:
    """``"Filament used [g]"`` and ``filament_used_g`` map to the same key."""
    return re.sub(r"[\s_\[\]()]+", "_", key.strip().lower()).strip("_")


@dataclass
class KeyValueResult:
    usages: list[FilamentUsage] = field(default_factory=list)
    print_time: int | None = None


class _SlotTable:
    """Per-slot usages built up by position.

    Writing slot ``i`` creates any missing slots before it, so a short
    value list never shifts the slots that follow.
    """

    def __init__(self) -> None:
        self.slots: list[FilamentUsage] = []

    def get(self, index: int) -> FilamentUsage:
        while len(self.slots) <= index:
            self.slots.append(FilamentUsage(weight_grams=0.0))
        return self.slots[index]


def _set_weight(slot: FilamentUsage, raw: str) -> None:
    weight = parse_float(raw)
    if weight is not None and weight > 0:
        slot.weight_grams = weight


def _set_length_m(slot: FilamentUsage, raw: str) -> None:
    length = parse_float(raw)
    if length is not None and length > 0:
        slot.length_meters = length


def _set_length_mm(slot: FilamentUsage, raw: str) -> None:
    length = parse_float(raw)
    if length is not None and length > 0:
        slot.length_meters = length / 1000


def _set_type(slot: FilamentUsage, raw: str) -> None:
    slot.type = raw
    slot.material = first_word(raw)


def _set_colour(slot: FilamentUsage, raw: str) -> None:
    slot.color_hex = raw


_SLOT_FIELDS = {
    "filament_used_g": _set_weight,
    "filament_used_m": _set_length_m,
    "filament_used_mm": _set_length_mm,
    "filament_type": _set_type,
    "filament_colour": _set_colour,
    "filament_color": _set_colour,
}

_PRINT_TIME_KEYS = {"print_time", "prediction"}


def _slot_confidence(slot: FilamentUsage) -> str:
    if slot.type and slot.color_hex:
        return "high"
    if slot.type:
        return "medium"
    return "low"


def parse_key_value_config(text: str) -> KeyValueResult:
    """Parse a flat ``key = value`` block into per-slot usages.

    Slot ``i`` of every recognised key lands on the same usage, whatever
    order the keys appear in. Unrecognised keys are ignored. Slots with no
    weight are kept here; the normalizer drops them.
    """
    table = _SlotTable()
    result = KeyValueResult()

    for line in text.splitlines():
        m = _KV_LINE.match(line)
        if not m:
            continue
        key = _normalize_key(m.group(1))
        value = m.group(2)

        if key in _PRINT_TIME_KEYS:
            secs = parse_duration(value.strip("\"'"))
            if secs > 0:
                result.print_time = secs
            continue

        setter = _SLOT_FIELDS.get(key)
        if setter is None:
            continue
        for i, raw in enumerate(value.split(",")):
            raw = raw.strip().strip("\"'")
            if raw:
                setter(table.get(i), raw)

    for slot in table.slots:
        slot.match_confidence = _slot_confidence(slot)
    result.usages = table.slots
    log.debug("Key/value block yielded %d slot(s)", len(table.slots))
    return result
