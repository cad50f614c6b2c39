"""Filament usage extraction from sliced G-code."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable

from spooltracker.formats import first_word, parse_duration, parse_float, strip_extension
from spooltracker.models import Confidence, FilamentUsage, ParsedPrintFile
from spooltracker.normalize import normalize_usages

log = logging.getLogger(__name__)

# Slicers write their metadata comments at the top; the rest is motion.
GCODE_SCAN_LINES = 1000
# Rough estimate for 1.75mm PLA. Used only when no weight is reported.
GRAMS_PER_METER = 3.0

NO_USAGE_ERROR = "No filament usage data found in G-code"


@dataclass
class _Scan:
    """Values collected from the header comments, by filament position."""

    totals: list[FilamentUsage] = field(default_factory=list)
    weights: list[float | None] = field(default_factory=list)
    lengths: list[float | None] = field(default_factory=list)
    types: list[str | None] = field(default_factory=list)
    colours: list[str | None] = field(default_factory=list)
    print_time: int | None = None

    @property
    def total_found(self) -> bool:
        return bool(self.totals)


def _split_values(raw: str) -> list[str]:
    return [v.strip().strip("\"'").strip() for v in re.split(r"[,;]", raw)]


def _positive(raw: str) -> float | None:
    value = parse_float(raw)
    return value if value is not None and value > 0 else None


def _on_total_weight(scan: _Scan, m: re.Match) -> None:
    if scan.total_found:
        return
    weight = _positive(m.group(1))
    if weight is not None:
        scan.totals.append(FilamentUsage(weight_grams=weight, match_confidence="low"))


def _on_weights(scan: _Scan, m: re.Match) -> None:
    scan.weights.extend(_positive(v) for v in _split_values(m.group(1)))


def _on_lengths(scan: _Scan, m: re.Match) -> None:
    scale = 1000 if m.group(1).lower() == "mm" else 1
    for v in _split_values(m.group(2)):
        length = _positive(v)
        scan.lengths.append(length / scale if length is not None else None)


def _on_cura_lengths(scan: _Scan, m: re.Match) -> None:
    scan.lengths.extend(_positive(v.rstrip("mM")) for v in _split_values(m.group(1)))


def _on_types(scan: _Scan, m: re.Match) -> None:
    scan.types.extend(v or None for v in _split_values(m.group(1)))


def _on_colours(scan: _Scan, m: re.Match) -> None:
    scan.colours.extend(v or None for v in _split_values(m.group(1)))


def _on_settings_id(scan: _Scan, m: re.Match) -> None:
    # "Bambu PLA Basic @BBL X1C" -> "Bambu PLA Basic"
    for v in _split_values(m.group(1)):
        if profile := re.match(r"^(.*?)\s*@", v):
            scan.types.append(profile.group(1).strip())


def _on_print_time(scan: _Scan, m: re.Match) -> None:
    scan.print_time = parse_duration(m.group(1))


Handler = Callable[[_Scan, re.Match], None]

# Each scanned line is tested against every marker; a line may hit several.
MARKERS: list[tuple[re.Pattern, Handler]] = [
    (re.compile(r";\s*total[\s_]*filament[\s_]*used[\s_]*\[g\]\s*[:=]\s*([\d.,]+)", re.I),
     _on_total_weight),
    (re.compile(r";\s*filament[\s_]*used[\s_]*\[g\]\s*[:=]\s*(.+)", re.I), _on_weights),
    (re.compile(r";\s*filament[\s_]*used[\s_]*\[(m|mm)\]\s*[:=]\s*(.+)", re.I), _on_lengths),
    # Cura: ";Filament used: 2.5m, 0.4m"
    (re.compile(r";\s*filament\s+used\s*:\s*(.+)", re.I), _on_cura_lengths),
    (re.compile(r";\s*filament_type\s*[:=]\s*(.+)", re.I), _on_types),
    (re.compile(r";\s*filament_colou?r\s*[:=]\s*(.+)", re.I), _on_colours),
    (re.compile(r";\s*filament_settings_id\s*[:=]\s*(.+)", re.I), _on_settings_id),
    (re.compile(r";\s*estimated\s*printing\s*time[^=]*[:=]\s*(.*)", re.I), _on_print_time),
    # BambuStudio: "; model printing time: 1h 2m; total estimated time: 1h 7m 32s"
    (re.compile(r"total\s+estimated\s+time:\s*(.+?)(?:;|$)", re.I), _on_print_time),
    # Cura: ";TIME:6039"
    (re.compile(r"^;TIME:\s*(\d+)", re.I), _on_print_time),
]


def _at(values: list, index: int):
    return values[index] if index < len(values) else None


def _positional_confidence(ftype: str | None, colour: str | None) -> Confidence:
    if ftype and colour:
        return "high"
    if ftype:
        return "medium"
    return "low"


def _reconcile(scan: _Scan, grams_per_meter: float) -> list[FilamentUsage]:
    """Turn the collected lists into usages, pairing values by position."""
    if scan.total_found:
        return list(scan.totals)

    usages = []
    if any(scan.weights):
        for i, weight in enumerate(scan.weights):
            if weight is None:
                continue
            ftype, colour = _at(scan.types, i), _at(scan.colours, i)
            usages.append(FilamentUsage(
                weight_grams=weight,
                length_meters=_at(scan.lengths, i),
                material=first_word(ftype),
                type=ftype,
                color_hex=colour,
                match_confidence=_positional_confidence(ftype, colour),
            ))
    elif any(scan.lengths):
        for i, length in enumerate(scan.lengths):
            if length is None:
                continue
            ftype = _at(scan.types, i)
            usages.append(FilamentUsage(
                weight_grams=length * grams_per_meter,
                length_meters=length,
                material=first_word(ftype),
                type=ftype,
                color_hex=_at(scan.colours, i),
                match_confidence="low",
                estimated=True,
            ))
    return usages


def scan_header(lines: list[str]) -> _Scan:
    scan = _Scan()
    for line in lines:
        for pattern, handler in MARKERS:
            if m := pattern.search(line):
                handler(scan, m)
    return scan


def parse_gcode(
    data: str | bytes,
    filename: str,
    *,
    scan_lines: int = GCODE_SCAN_LINES,
    grams_per_meter: float = GRAMS_PER_METER,
) -> ParsedPrintFile:
    """Extract filament usage from G-code header comments.

    Handles PrusaSlicer/OrcaSlicer/BambuStudio and Cura comment dialects.
    Only the first ``scan_lines`` lines are examined. Never raises: any
    failure is recorded in ``parse_errors``.
    """
    result = ParsedPrintFile(filename=filename, project_name=strip_extension(filename))
    try:
        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        scan = scan_header(text.splitlines()[:scan_lines])
        if scan.print_time is not None:
            result.print_time = scan.print_time
        result.filament_usages = normalize_usages(_reconcile(scan, grams_per_meter))
        if not result.filament_usages:
            result.parse_errors.append(NO_USAGE_ERROR)
    except Exception as e:
        log.exception("Unexpected failure parsing %s", filename)
        result.parse_errors.append(f"Failed to parse G-code file: {e}")

    log.info(
        "%s: %d filament usage(s), print time %s",
        filename, len(result.filament_usages), result.print_time,
    )
    return result
