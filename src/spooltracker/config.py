"""Load and validate spooltracker.toml configuration."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from spooltracker.gcode import GCODE_SCAN_LINES, GRAMS_PER_METER
from spooltracker.matcher import EMPTY_THRESHOLD


@dataclass
class ParserConfig:
    gcode_scan_lines: int = GCODE_SCAN_LINES
    grams_per_meter: float = GRAMS_PER_METER  # length -> weight estimate


@dataclass
class MatcherConfig:
    include_empty: bool = False
    empty_threshold: float = EMPTY_THRESHOLD  # grams


@dataclass
class SpoolTrackerConfig:
    parser: ParserConfig = field(default_factory=ParserConfig)
    matcher: MatcherConfig = field(default_factory=MatcherConfig)


def load_config(path: Path | None) -> SpoolTrackerConfig:
    """Load and validate a spooltracker.toml file. ``None`` gives defaults."""
    if path is None:
        return SpoolTrackerConfig()

    path = Path(path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    # Parser config
    parser_raw = raw.get("parser", {})
    scan_lines = int(parser_raw.get("gcode_scan_lines", GCODE_SCAN_LINES))
    if scan_lines < 1:
        raise ValueError(f"parser.gcode_scan_lines must be >= 1, got {scan_lines}")
    grams_per_meter = float(parser_raw.get("grams_per_meter", GRAMS_PER_METER))
    if grams_per_meter <= 0:
        raise ValueError(f"parser.grams_per_meter must be > 0, got {grams_per_meter}")
    parser = ParserConfig(gcode_scan_lines=scan_lines, grams_per_meter=grams_per_meter)

    # Matcher config
    matcher_raw = raw.get("matcher", {})
    include_empty = matcher_raw.get("include_empty", False)
    if not isinstance(include_empty, bool):
        raise ValueError(f"matcher.include_empty must be true or false, got {include_empty!r}")
    empty_threshold = float(matcher_raw.get("empty_threshold", EMPTY_THRESHOLD))
    if empty_threshold < 0:
        raise ValueError(f"matcher.empty_threshold must be >= 0, got {empty_threshold}")
    matcher = MatcherConfig(include_empty=include_empty, empty_threshold=empty_threshold)

    return SpoolTrackerConfig(parser=parser, matcher=matcher)
