"""Filament usage extraction from sliced print files and spool matching."""

from spooltracker.matcher import match_usage, score
from spooltracker.models import FilamentUsage, ParsedPrintFile, Spool, SpoolMatch
from spooltracker.parser import parse_print_data, parse_print_file

__all__ = [
    "FilamentUsage",
    "ParsedPrintFile",
    "Spool",
    "SpoolMatch",
    "match_usage",
    "parse_print_data",
    "parse_print_file",
    "score",
]
