"""CLI entry point for spooltracker."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from spooltracker.config import SpoolTrackerConfig, load_config
from spooltracker.inventory import load_spools
from spooltracker.matcher import assign_spools, plan_deductions
from spooltracker.models import FilamentAssignment, FilamentUsage, ParsedPrintFile
from spooltracker.parser import parse_print_file


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="spooltracker",
        description="Read filament usage from sliced print files and match it to spools",
    )
    sub = parser.add_subparsers(dest="command")

    # Shared args for subcommands
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("file", type=Path, help="Print file (.3mf, .gcode, .gco)")
    common.add_argument("--config", type=Path, default=None, help="Path to spooltracker.toml")
    common.add_argument("--json", action="store_true", help="Print JSON instead of text")
    common.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    sub.add_parser("parse", parents=[common], help="Show filament usage found in a print file")

    match_cmd = sub.add_parser(
        "match", parents=[common], help="Match filament usage to spools and plan deductions"
    )
    match_cmd.add_argument(
        "--spools", type=Path, required=True, help="Spool inventory JSON (API export)"
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    cfg = load_config(args.config)
    parsed = parse_print_file(
        args.file,
        gcode_scan_lines=cfg.parser.gcode_scan_lines,
        grams_per_meter=cfg.parser.grams_per_meter,
    )

    if args.command == "parse":
        _cmd_parse(args, parsed)
    elif args.command == "match":
        _cmd_match(args, cfg, parsed)

    if not parsed.filament_usages:
        sys.exit(1)


def _format_time(seconds: int) -> str:
    hours, rest = divmod(seconds, 3600)
    minutes = rest // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _describe(usage: FilamentUsage) -> str:
    parts = [usage.type or usage.material or "unknown filament"]
    if usage.color_hex or usage.color:
        parts.append(usage.color_hex or usage.color)
    parts.append(f"{usage.weight_grams:.1f}g{' (est.)' if usage.estimated else ''}")
    if usage.length_meters is not None:
        parts.append(f"{usage.length_meters:.2f}m")
    return "  ".join(parts) + f"  [{usage.match_confidence}]"


def _print_summary(parsed: ParsedPrintFile) -> None:
    print(f"\n{parsed.filename}")
    if parsed.project_name:
        print(f"  Project: {parsed.project_name}")
    if parsed.print_time:
        print(f"  Print time: {_format_time(parsed.print_time)}")
    if parsed.filament_usages:
        print(f"  Filament ({parsed.total_weight_grams:.1f}g total):")
        for i, usage in enumerate(parsed.filament_usages, 1):
            print(f"    {i}. {_describe(usage)}")
    else:
        print("  No filament usage found")
    for err in parsed.parse_errors:
        print(f"  ! {err}")


def _cmd_parse(args: argparse.Namespace, parsed: ParsedPrintFile) -> None:
    if args.json:
        print(json.dumps(parsed.to_dict(), indent=2))
        return
    _print_summary(parsed)


def _print_assignments(assignments: list[FilamentAssignment]) -> None:
    print("\nMatches:")
    for i, a in enumerate(assignments, 1):
        print(f"  {i}. {_describe(a.usage)}")
        if not a.matches:
            print("     no matching spool")
        for m in a.matches:
            marker = "*" if m.spool.id == a.selected_spool_id else " "
            warn = "  (not enough left)" if m.insufficient_stock else ""
            print(f"    {marker} {m.spool.label}  score {m.match_score} ({m.matched_on}){warn}")


def _cmd_match(
    args: argparse.Namespace, cfg: SpoolTrackerConfig, parsed: ParsedPrintFile
) -> None:
    spools = load_spools(args.spools)
    assignments = assign_spools(parsed, spools, include_empty=cfg.matcher.include_empty)
    deductions = plan_deductions(
        assignments, spools, empty_threshold=cfg.matcher.empty_threshold
    )

    if args.json:
        print(json.dumps({
            "file": parsed.to_dict(),
            "assignments": [a.to_dict() for a in assignments],
            "deductions": [d.to_dict() for d in deductions],
        }, indent=2))
        return

    _print_summary(parsed)
    _print_assignments(assignments)
    print("\nProposed deductions (not applied):")
    if not deductions:
        print("  none")
    for d in deductions:
        empty = "  -> mark empty" if d.mark_empty else ""
        print(f"  spool #{d.spool_id}: -{d.grams:.1f}g  "
              f"{d.previous_weight:.1f}g -> {d.new_weight:.1f}g{empty}")
