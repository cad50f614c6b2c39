"""Data models shared by the extractors and the spool matcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Confidence = Literal["high", "medium", "low"]


@dataclass
class FilamentUsage:
    """One filament consumption event recovered from a print file."""

    weight_grams: float
    match_confidence: Confidence = "low"
    material: str | None = None  # e.g. "PLA", first word of type
    type: str | None = None  # slicer profile name, e.g. "PLA Basic"
    color: str | None = None
    color_hex: str | None = None  # bare hex, "#"-prefixed hex or a colour name
    length_meters: float | None = None
    product_code: str | None = None  # manufacturer SKU (3MF only)
    estimated: bool = False  # weight derived from length, not reported

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key, value in (
            ("color", self.color),
            ("colorHex", self.color_hex),
            ("material", self.material),
            ("type", self.type),
        ):
            if value is not None:
                out[key] = value
        out["weightGrams"] = self.weight_grams
        if self.length_meters is not None:
            out["lengthMeters"] = self.length_meters
        if self.product_code is not None:
            out["productCode"] = self.product_code
        out["matchConfidence"] = self.match_confidence
        if self.estimated:
            out["estimated"] = True
        return out


@dataclass
class ParsedPrintFile:
    """Extraction result for one uploaded file.

    ``parse_errors`` are diagnostics, not failures: usages may still be
    present. No usages and no errors means the file held no usage data.
    """

    filename: str
    project_name: str | None = None
    print_time: int | None = None  # seconds
    filament_usages: list[FilamentUsage] = field(default_factory=list)
    parse_errors: list[str] = field(default_factory=list)

    @property
    def total_weight_grams(self) -> float:
        return sum(u.weight_grams for u in self.filament_usages)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"filename": self.filename}
        if self.project_name is not None:
            out["projectName"] = self.project_name
        if self.print_time is not None:
            out["printTime"] = self.print_time
        out["filamentUsages"] = [u.to_dict() for u in self.filament_usages]
        out["parseErrors"] = list(self.parse_errors)
        return out


def _opt_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


@dataclass
class Spool:
    """Read-only snapshot of a spool as served by the inventory API."""

    id: int
    color_hex: str | None = None
    product_code: str | None = None
    material_name: str | None = None
    current_weight_grams: float | None = None
    uid: str | None = None
    color_name: str | None = None
    manufacturer_name: str | None = None
    filament_type_name: str | None = None
    is_empty: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Spool:
        """Build a Spool from an API record (camelCase keys)."""
        if "id" not in raw:
            raise ValueError(f"spool record has no 'id': {raw!r}")
        return cls(
            id=int(raw["id"]),
            color_hex=raw.get("colorHexCode"),
            product_code=raw.get("colorProductCode"),
            material_name=raw.get("materialName"),
            current_weight_grams=_opt_float(raw.get("currentWeightGrams")),
            uid=raw.get("uid"),
            color_name=raw.get("colorName"),
            manufacturer_name=raw.get("manufacturerName"),
            filament_type_name=raw.get("filamentTypeName"),
            is_empty=bool(raw.get("isEmpty", False)),
        )

    @property
    def label(self) -> str:
        parts = [self.manufacturer_name, self.filament_type_name or self.material_name,
                 self.color_name]
        text = " ".join(p for p in parts if p)
        return f"#{self.id} {text}" if text else f"#{self.id}"


MatchSignal = Literal["color", "product_code", "material"]


@dataclass
class SpoolMatch:
    spool: Spool
    match_score: int  # 0-100, higher is better
    matched_on: MatchSignal
    insufficient_stock: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "spoolId": self.spool.id,
            "matchScore": self.match_score,
            "matchedOn": self.matched_on,
            "insufficientStock": self.insufficient_stock,
        }


@dataclass
class FilamentAssignment:
    """A usage paired with its ranked candidates and the chosen spool."""

    usage: FilamentUsage
    matches: list[SpoolMatch] = field(default_factory=list)
    selected_spool_id: int | None = None
    deduct_grams: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "usage": self.usage.to_dict(),
            "matches": [m.to_dict() for m in self.matches],
            "selectedSpoolId": self.selected_spool_id,
            "deductGrams": self.deduct_grams,
        }


@dataclass
class Deduction:
    spool_id: int
    grams: float
    previous_weight: float
    new_weight: float
    mark_empty: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "spoolId": self.spool_id,
            "grams": self.grams,
            "previousWeight": self.previous_weight,
            "newWeight": self.new_weight,
            "markEmpty": self.mark_empty,
        }
