"""Tests for 3MF filament usage extraction."""

import io
import json
import zipfile

from conftest import MODEL_XML, make_3mf

from spooltracker.threemf import parse_3mf

SLICE_INFO_XML = """<?xml version="1.0" encoding="UTF-8"?>
<config>
  <plate>
    <metadata key="index" value="1"/>
    <metadata key="prediction" value="5400"/>
    <filament id="1" type="PLA" color="#00AE42" used_m="10.12" used_g="30.17"/>
    <filament id="2" type="PETG" color="#FFFFFF" used_m="0.00" used_g="0.00"/>
  </plate>
</config>
"""


def test_slice_info_json():
    data = make_3mf({
        "Metadata/slice_info.config": json.dumps({
            "filament": [
                {"color_code": "#112233", "type": "Basic", "used_g": 150, "used_m": 50},
            ],
        }),
    })
    result = parse_3mf(data, "benchy.3mf")
    (usage,) = result.filament_usages
    assert usage.color_hex == "#112233"
    assert usage.type == "Basic"
    assert usage.weight_grams == 150
    assert usage.length_meters == 50
    assert usage.match_confidence == "high"
    assert result.parse_errors == []


def test_slice_info_json_metadata():
    data = make_3mf({
        "Metadata/slice_info.config": json.dumps({
            "filament": [{"type": "PLA", "color_code": "#FFFFFF", "used_g": 5}],
            "print_time": 1234,
            "project_name": "Widget",
        }),
        "Metadata/project_settings.config": json.dumps({"name": "Ignored"}),
    })
    result = parse_3mf(data, "widget_v2.3mf")
    assert result.print_time == 1234
    assert result.project_name == "Widget"


def test_slice_info_missing_weight_dropped():
    data = make_3mf({
        "Metadata/slice_info.config": json.dumps({
            "filament": [{"type": "PLA"}, {"type": "PETG", "used_g": 2}],
        }),
    })
    result = parse_3mf(data, "x.3mf")
    assert [u.type for u in result.filament_usages] == ["PETG"]


def test_slice_info_xml():
    data = make_3mf({"Metadata/slice_info.config": SLICE_INFO_XML})
    result = parse_3mf(data, "x.gcode.3mf")
    (usage,) = result.filament_usages
    assert usage.type == "PLA"
    assert usage.color_hex == "#00AE42"
    assert usage.weight_grams == 30.17
    assert usage.length_meters == 10.12
    assert usage.match_confidence == "high"
    assert result.print_time == 5400
    assert result.project_name == "x"


def test_slice_info_key_value_fallback():
    text = (
        "filament_type = PLA,PETG\n"
        "filament_colour = #FF0000,#00FF00\n"
        "filament_used_g = 11.5,7\n"
        "print_time = 600\n"
    )
    result = parse_3mf(make_3mf({"Metadata/slice_info.config": text}), "x.3mf")
    first, second = result.filament_usages
    assert (first.type, first.color_hex, first.weight_grams) == ("PLA", "#FF0000", 11.5)
    assert (second.type, second.color_hex, second.weight_grams) == ("PETG", "#00FF00", 7.0)
    assert first.match_confidence == "high"
    assert result.print_time == 600
    assert result.parse_errors == []


def test_project_settings_name():
    data = make_3mf({"Metadata/project_settings.config": json.dumps({"name": "Gridfinity"})})
    result = parse_3mf(data, "grid.3mf")
    assert result.project_name == "Gridfinity"
    assert result.filament_usages == []
    assert result.parse_errors == []


def test_project_settings_decode_error_ignored():
    data = make_3mf({"Metadata/project_settings.config": "layer_height = 0.2"})
    result = parse_3mf(data, "grid.3mf")
    assert result.project_name == "grid"
    assert result.parse_errors == []


def test_plate_json():
    data = make_3mf({
        "Metadata/plate_1.json": json.dumps({
            "filament_used_g": [12.5, 0, 4],
            "filament_type": ["PLA Basic", "PETG", "ABS"],
            "filament_colour": ["#FFFFFF"],
            "print_time": 3000,
        }),
    })
    result = parse_3mf(data, "x.3mf")
    first, second = result.filament_usages
    assert (first.type, first.material, first.weight_grams) == ("PLA Basic", "PLA", 12.5)
    assert first.color_hex == "#FFFFFF"
    assert first.match_confidence == "medium"
    assert (second.type, second.weight_grams) == ("ABS", 4.0)
    assert result.print_time == 3000


def test_plate_json_scalar_weight_without_type():
    data = make_3mf({"Metadata/plate_2.json": json.dumps({"filament_used_g": 9})})
    (usage,) = parse_3mf(data, "x.3mf").filament_usages
    assert usage.weight_grams == 9
    assert usage.match_confidence == "low"


def test_plate_config():
    data = make_3mf({
        "Metadata/plate_1.config": "filament_used_g = 3.5\nfilament_type = PETG\n",
    })
    (usage,) = parse_3mf(data, "x.3mf").filament_usages
    assert (usage.type, usage.weight_grams, usage.match_confidence) == ("PETG", 3.5, "medium")


def test_bad_plate_does_not_abort_others():
    data = make_3mf({
        "Metadata/plate_1.json": "{this is not json",
        "Metadata/plate_2.json": json.dumps({"filament_used_g": [2.0]}),
    })
    result = parse_3mf(data, "x.3mf")
    assert result.parse_errors == ["Failed to parse Metadata/plate_1.json"]
    assert [u.weight_grams for u in result.filament_usages] == [2.0]


def test_plate_print_time_does_not_override():
    data = make_3mf({
        "Metadata/slice_info.config": SLICE_INFO_XML,
        "Metadata/plate_1.json": json.dumps({"print_time": 1}),
    })
    assert parse_3mf(data, "x.3mf").print_time == 5400


def test_unrelated_entries_ignored():
    data = make_3mf({
        "Metadata/plate_1.png": b"\x89PNG",
        "Metadata/plate_1.json.bak": "{broken",
        "Metadata/model_settings.config": "<config/>",
    })
    result = parse_3mf(data, "x.3mf")
    assert result.filament_usages == []
    assert result.parse_errors == []


def test_model_title_used_for_project_name():
    data = make_3mf({"3D/3dmodel.model": MODEL_XML.format(title="Calibration Cube")})
    assert parse_3mf(data, "cube.3mf").project_name == "Calibration Cube"


def test_project_name_from_filename():
    result = parse_3mf(make_3mf({}), "My Print.3mf")
    assert result.project_name == "My Print"
    assert result.filament_usages == []
    assert result.parse_errors == []


def test_corrupt_archive():
    result = parse_3mf(b"definitely not a zip", "broken.3mf")
    assert result.filament_usages == []
    assert len(result.parse_errors) == 1
    assert result.parse_errors[0].startswith("Failed to parse 3MF file:")


def _corrupt_entry(data: bytes, name: str) -> bytes:
    """Flip every compressed byte of one entry so reading it fails."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        info = zf.getinfo(name)
    raw = bytearray(data)
    # 30-byte local file header, then the name and extra field
    start = info.header_offset + 30 + len(info.filename.encode()) + len(info.extra)
    for i in range(start, start + info.compress_size):
        raw[i] ^= 0xFF
    return bytes(raw)


def test_corrupt_entry_reported():
    data = make_3mf({
        "Metadata/plate_1.json": json.dumps({"filament_used_g": [1.0]}),
        "Metadata/plate_2.json": json.dumps({"filament_used_g": [2.0]}),
    })
    result = parse_3mf(_corrupt_entry(data, "Metadata/plate_1.json"), "x.3mf")
    assert result.parse_errors == ["Failed to parse Metadata/plate_1.json"]
    assert [u.weight_grams for u in result.filament_usages] == [2.0]


def test_corrupt_slice_info_keeps_plates():
    data = make_3mf({
        "Metadata/slice_info.config": json.dumps({
            "filament": [{"type": "PLA", "color_code": "#FFFFFF", "used_g": 10}],
        }),
        "Metadata/plate_1.json": json.dumps({"filament_used_g": [2.0]}),
    })
    result = parse_3mf(_corrupt_entry(data, "Metadata/slice_info.config"), "x.3mf")
    assert result.parse_errors == ["Failed to parse Metadata/slice_info.config"]
    assert [u.weight_grams for u in result.filament_usages] == [2.0]


def test_corrupt_optional_metadata_ignored():
    data = make_3mf({
        "Metadata/project_settings.config": json.dumps({"name": "Gridfinity"}),
        "3D/3dmodel.model": MODEL_XML.format(title="Calibration Cube"),
        "Metadata/plate_1.json": json.dumps({"filament_used_g": [2.0]}),
    })
    data = _corrupt_entry(data, "Metadata/project_settings.config")
    data = _corrupt_entry(data, "3D/3dmodel.model")
    result = parse_3mf(data, "grid.3mf")
    assert result.parse_errors == []
    assert result.project_name == "grid"
    assert [u.weight_grams for u in result.filament_usages] == [2.0]


def test_infinite_print_time_keeps_plates():
    data = make_3mf({
        "Metadata/plate_1.json": '{"filament_used_g": [1.0], "print_time": 1e400}',
        "Metadata/plate_2.json": json.dumps({"filament_used_g": [2.0], "print_time": 60}),
    })
    result = parse_3mf(data, "x.3mf")
    assert result.parse_errors == []
    assert [u.weight_grams for u in result.filament_usages] == [1.0, 2.0]
    assert result.print_time == 60


def test_infinite_print_time_in_slice_info():
    data = make_3mf({
        "Metadata/slice_info.config": (
            '{"filament": [{"type": "PLA", "used_g": 3}], "print_time": 1e400}'
        ),
    })
    result = parse_3mf(data, "x.3mf")
    assert [u.weight_grams for u in result.filament_usages] == [3]
    assert result.print_time is None


def test_idempotent():
    data = make_3mf({"Metadata/slice_info.config": SLICE_INFO_XML})
    assert parse_3mf(data, "x.3mf").to_dict() == parse_3mf(data, "x.3mf").to_dict()
