"""Load a spool inventory snapshot exported from the SpoolTracker API."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from spooltracker.models import Spool

log = logging.getLogger(__name__)


def parse_spools(raw: object) -> list[Spool]:
    """Build spools from decoded JSON.

    Accepts a plain list of spool records or a paged response
    (``{"content": [...], ...}``).
    """
    if isinstance(raw, dict) and "content" in raw:
        raw = raw["content"]
    if not isinstance(raw, list):
        raise ValueError("Spool inventory must be a JSON list of spool records")

    spools = []
    for i, record in enumerate(raw):
        if not isinstance(record, dict):
            raise ValueError(f"spools[{i}]: expected an object, got {type(record).__name__}")
        try:
            spools.append(Spool.from_dict(record))
        except (TypeError, ValueError) as e:
            raise ValueError(f"spools[{i}]: {e}") from None
    return spools


def load_spools(path: Path) -> list[Spool]:
    """Read a JSON inventory file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Spool inventory not found: {path}")
    try:
        raw = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"Spool inventory {path} is not valid JSON: {e}") from None
    spools = parse_spools(raw)
    log.info("Loaded %d spool(s) from %s", len(spools), path)
    return spools
