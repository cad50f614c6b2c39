"""Shared fixtures: in-memory 3MF archives and spool inventories."""

import io
import zipfile

import pytest

from spooltracker.models import Spool

MODEL_XML = """<?xml version="1.0" encoding="UTF-8"?>
<model unit="millimeter" xmlns="http://schemas.microsoft.com/3dmanufacturing/core/2015/02">
  <metadata name="Title">{title}</metadata>
  <resources/>
  <build/>
</model>
"""


def make_3mf(entries: dict[str, str | bytes]) -> bytes:
    """Zip the given entries into 3MF bytes."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("[Content_Types].xml", "<Types/>")
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


@pytest.fixture
def spools() -> list[Spool]:
    return [
        Spool(id=1, color_hex="#FFFFFF", material_name="PLA", current_weight_grams=800.0,
              manufacturer_name="Bambu Lab", color_name="Jade White"),
        Spool(id=2, color_hex="#000000", material_name="PLA", current_weight_grams=40.0,
              product_code="10101", color_name="Black"),
        Spool(id=3, color_hex="#FF0000", material_name="PETG", current_weight_grams=500.0,
              color_name="Red"),
        Spool(id=4, color_hex="#FFFFFF", material_name="PLA", current_weight_grams=900.0,
              is_empty=True),
    ]
