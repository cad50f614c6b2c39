"""Decoders for the structured metadata files slicers put in a 3MF.

Each decoder accepts raw text and either returns its typed result or
raises :class:`FormatMismatch`, meaning "not this format, try the next
one". Missing optional fields are not a mismatch.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as SafeET  # safe fromstring for untrusted 3MF XML

from spooltracker.formats import first_word, parse_duration, parse_float
from spooltracker.models import FilamentUsage

log = logging.getLogger(__name__)


class FormatMismatch(ValueError):
    """The text is not in the format the decoder handles."""


@dataclass
class SliceInfo:
    usages: list[FilamentUsage] = field(default_factory=list)
    print_time: int | None = None
    project_name: str | None = None


@dataclass
class PlateInfo:
    usages: list[FilamentUsage] = field(default_factory=list)
    print_time: int | None = None


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return parse_float(value)
    return None


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _load_object(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except ValueError as e:
        raise FormatMismatch(f"not JSON: {e}") from None
    if not isinstance(data, dict):
        raise FormatMismatch(f"expected a JSON object, got {type(data).__name__}")
    return data


def _load_xml(text: str | bytes):
    try:
        return SafeET.fromstring(text)
    except (SafeET.ParseError, DefusedXmlException) as e:
        raise FormatMismatch(f"not XML: {e}") from None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _duration_field(value: Any) -> int | None:
    """Print time from a JSON field: seconds as a number or a duration string."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, str)):
        secs = parse_duration(value)
        return secs or None
    return None


def decode_slice_info_json(text: str) -> SliceInfo:
    """Slice info written as JSON: ``{"filament": [{...}, ...]}``.

    The slicer's own record of what it sliced, so every entry is high
    confidence.
    """
    data = _load_object(text)
    filaments = data.get("filament")
    if filaments is not None and not isinstance(filaments, list):
        raise FormatMismatch("'filament' is not a list")

    info = SliceInfo()
    for f in filaments or []:
        if not isinstance(f, dict):
            continue
        ftype = _text(f.get("type")) or _text(f.get("name"))
        info.usages.append(FilamentUsage(
            weight_grams=_number(f.get("used_g")) or 0.0,
            length_meters=_number(f.get("used_m")),
            type=ftype,
            material=_text(f.get("material")) or first_word(ftype),
            color=_text(f.get("color")),
            color_hex=_text(f.get("color_code")),
            product_code=_text(f.get("product_code")),
            match_confidence="high",
        ))

    info.print_time = _duration_field(data.get("print_time"))
    info.project_name = _text(data.get("project_name"))
    return info


def decode_slice_info_xml(text: str) -> SliceInfo:
    """Slice info in the slicer's native XML layout.

    ``<config><plate><metadata key="prediction" value="..."/>
    <filament id="1" type="PLA" color="#FFFFFF" used_m="1.2" used_g="3.4"/>
    </plate></config>``
    """
    root = _load_xml(text)
    plates = [el for el in root.iter() if _local_name(el.tag) == "plate"]
    if not plates:
        raise FormatMismatch("no <plate> elements")
    log.debug("Slice info XML holds %d plate(s)", len(plates))

    info = SliceInfo()
    for plate in plates:
        for child in plate:
            name = _local_name(child.tag)
            if name == "metadata" and child.get("key") == "prediction":
                if info.print_time is None:
                    info.print_time = _duration_field(child.get("value"))
            elif name == "filament":
                ftype = _text(child.get("type"))
                info.usages.append(FilamentUsage(
                    weight_grams=_number(child.get("used_g")) or 0.0,
                    length_meters=_number(child.get("used_m")),
                    type=ftype,
                    material=first_word(ftype),
                    color_hex=_text(child.get("color")),
                    match_confidence="high",
                ))
    return info


def decode_plate_json(text: str) -> PlateInfo:
    """Per-plate JSON written alongside sliced plates.

    ``filament_used_g`` may be a number or a list; ``filament_type`` and
    ``filament_colour`` are parallel lists indexed the same way.
    """
    data = _load_object(text)
    plate = PlateInfo()

    weights = _as_list(data.get("filament_used_g"))
    types = _as_list(data.get("filament_type"))
    colours = _as_list(data.get("filament_colour"))
    for i, raw in enumerate(weights):
        weight = _number(raw)
        if weight is None or weight <= 0:
            continue
        ftype = _text(types[i]) if i < len(types) else None
        colour = _text(colours[i]) if i < len(colours) else None
        plate.usages.append(FilamentUsage(
            weight_grams=weight,
            type=ftype,
            material=first_word(ftype),
            color_hex=colour,
            match_confidence="medium" if ftype else "low",
        ))

    plate.print_time = _duration_field(data.get("print_time"))
    return plate


def decode_project_settings(text: str) -> str | None:
    """Project name from ``project_settings.config``, if it carries one."""
    return _text(_load_object(text).get("name"))


def decode_model_title(xml: str | bytes) -> str | None:
    """``<metadata name="Title">`` from the 3MF core model file."""
    root = _load_xml(xml)
    for el in root:
        if _local_name(el.tag) == "metadata" and el.get("name") == "Title":
            return _text(el.text)
    return None
