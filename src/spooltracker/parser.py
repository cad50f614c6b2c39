"""Pick the right extractor for an uploaded print file."""

from __future__ import annotations

import logging
from pathlib import Path

from spooltracker.gcode import GCODE_SCAN_LINES, GRAMS_PER_METER, parse_gcode
from spooltracker.models import ParsedPrintFile
from spooltracker.threemf import parse_3mf

log = logging.getLogger(__name__)

THREEMF_EXTENSIONS = {"3mf"}
GCODE_EXTENSIONS = {"gcode", "gco"}
SUPPORTED_EXTENSIONS = THREEMF_EXTENSIONS | GCODE_EXTENSIONS


def file_extension(filename: str) -> str:
    """Text after the last dot, lower-cased ("plate.gcode.3mf" -> "3mf")."""
    return filename.rsplit(".", 1)[-1].lower()


def unsupported(filename: str) -> ParsedPrintFile:
    ext = file_extension(filename)
    return ParsedPrintFile(
        filename=filename,
        parse_errors=[f"Unsupported file format: {ext}. Please use 3MF or G-code files."],
    )


def parse_print_data(
    data: bytes,
    filename: str,
    *,
    gcode_scan_lines: int = GCODE_SCAN_LINES,
    grams_per_meter: float = GRAMS_PER_METER,
) -> ParsedPrintFile:
    """Parse an in-memory print file, choosing the format by extension.

    Never raises; problems are reported in ``parse_errors``.
    """
    ext = file_extension(filename)
    if ext in THREEMF_EXTENSIONS:
        return parse_3mf(data, filename)
    if ext in GCODE_EXTENSIONS:
        return parse_gcode(
            data, filename, scan_lines=gcode_scan_lines, grams_per_meter=grams_per_meter
        )
    log.warning("Unsupported print file: %s", filename)
    return unsupported(filename)


def parse_print_file(path: Path, **kwargs) -> ParsedPrintFile:
    """Read and parse a print file from disk.

    Unsupported extensions are reported without reading the file. A
    missing file raises ``FileNotFoundError``.
    """
    path = Path(path)
    if file_extension(path.name) not in SUPPORTED_EXTENSIONS:
        return unsupported(path.name)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return parse_print_data(path.read_bytes(), path.name, **kwargs)
