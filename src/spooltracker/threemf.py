"""Filament usage extraction from 3MF project archives.

A sliced 3MF is a zip. The slicer records what it used in a few metadata
entries, each optional and each written in one of several text formats:

* ``Metadata/slice_info.config``: JSON, XML or flat key=value
* ``Metadata/project_settings.config``: JSON, may carry the project name
* ``Metadata/plate_<N>.json`` / ``Metadata/plate_<N>.config``: per plate
* ``3D/3dmodel.model``: core model, may carry a ``Title``
"""

from __future__ import annotations

import io
import logging
import re
import zipfile
import zlib

from spooltracker.formats import detect_format, parse_key_value_config, strip_extension
from spooltracker.models import FilamentUsage, ParsedPrintFile
from spooltracker.normalize import normalize_usages
from spooltracker.schemas import (
    FormatMismatch,
    decode_model_title,
    decode_plate_json,
    decode_project_settings,
    decode_slice_info_json,
    decode_slice_info_xml,
)

log = logging.getLogger(__name__)

SLICE_INFO = "Metadata/slice_info.config"
PROJECT_SETTINGS = "Metadata/project_settings.config"
MODEL_FILE = "3D/3dmodel.model"
PLATE_ENTRY = re.compile(r"Metadata/plate_\d+\.(json|config)")

# Errors a single archive entry can raise while being read or decoded.
ENTRY_ERRORS = (ValueError, zipfile.BadZipFile, zlib.error, OSError, EOFError)


def _read_text(zf: zipfile.ZipFile, name: str) -> str:
    return zf.read(name).decode("utf-8", errors="replace")


def _set_print_time(result: ParsedPrintFile, secs: int | None) -> None:
    if secs and result.print_time is None:
        result.print_time = secs


def _set_project_name(result: ParsedPrintFile, name: str | None) -> None:
    if name and not result.project_name:
        result.project_name = name


def _read_slice_info(text: str, result: ParsedPrintFile, usages: list[FilamentUsage]) -> None:
    decoders = {"json": decode_slice_info_json, "xml": decode_slice_info_xml}
    decoder = decoders.get(detect_format(text))
    if decoder is not None:
        try:
            info = decoder(text)
        except FormatMismatch as e:
            log.debug("Slice info is not structured (%s), reading as key/value", e)
        else:
            usages.extend(info.usages)
            _set_print_time(result, info.print_time)
            _set_project_name(result, info.project_name)
            return

    kv = parse_key_value_config(text)
    usages.extend(kv.usages)
    _set_print_time(result, kv.print_time)


def _read_plate(
    name: str, text: str, result: ParsedPrintFile, usages: list[FilamentUsage]
) -> None:
    # Some slicers write JSON into .config entries too
    if name.endswith(".json") or detect_format(text) == "json":
        plate = decode_plate_json(text)
        usages.extend(plate.usages)
        _set_print_time(result, plate.print_time)
    else:
        kv = parse_key_value_config(text)
        usages.extend(kv.usages)
        _set_print_time(result, kv.print_time)


def _extract(zf: zipfile.ZipFile, result: ParsedPrintFile, usages: list[FilamentUsage]) -> None:
    names = zf.namelist()

    if SLICE_INFO in names:
        log.debug("Reading %s", SLICE_INFO)
        try:
            _read_slice_info(_read_text(zf, SLICE_INFO), result, usages)
        except ENTRY_ERRORS as e:
            log.warning("Failed to parse %s: %s", SLICE_INFO, e)
            result.parse_errors.append(f"Failed to parse {SLICE_INFO}")

    if PROJECT_SETTINGS in names:
        try:
            _set_project_name(result, decode_project_settings(_read_text(zf, PROJECT_SETTINGS)))
        except ENTRY_ERRORS as e:
            log.debug("Ignoring %s: %s", PROJECT_SETTINGS, e)  # optional metadata

    for name in names:
        if not PLATE_ENTRY.fullmatch(name):
            continue
        log.debug("Reading %s", name)
        try:
            _read_plate(name, _read_text(zf, name), result, usages)
        except ENTRY_ERRORS as e:
            log.warning("Failed to parse %s: %s", name, e)
            result.parse_errors.append(f"Failed to parse {name}")

    if not result.project_name and MODEL_FILE in names:
        try:
            _set_project_name(result, decode_model_title(zf.read(MODEL_FILE)))
        except ENTRY_ERRORS as e:
            log.debug("Ignoring %s: %s", MODEL_FILE, e)


def parse_3mf(data: bytes, filename: str) -> ParsedPrintFile:
    """Extract filament usage from a 3MF archive.

    Never raises. An unreadable archive yields a single error and no
    usages; a bad metadata entry is reported and the rest still read.
    """
    result = ParsedPrintFile(filename=filename)
    try:
        zf = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, OSError, ValueError) as e:
        result.parse_errors.append(f"Failed to parse 3MF file: {e}")
        return result

    usages: list[FilamentUsage] = []
    with zf:
        try:
            _extract(zf, result, usages)
        except Exception as e:
            log.exception("Unexpected failure parsing %s", filename)
            result.parse_errors.append(f"Failed to parse 3MF file: {e}")

    _set_project_name(result, strip_extension(filename))
    result.filament_usages = normalize_usages(usages)
    log.info(
        "%s: %d filament usage(s), print time %s",
        filename, len(result.filament_usages), result.print_time,
    )
    return result
