"""Tests for forgelink.replies: payload parsers."""

from __future__ import annotations

import ast
import inspect

import pytest
from conftest import INFO_PAYLOAD, POSITION_PAYLOAD, STATUS_PAYLOAD, TEMPERATURES_PAYLOAD

from forgelink import replies
from forgelink.errors import ParseFailure
from forgelink.replies import (
    expect_empty,
    parse_info,
    parse_job_status,
    parse_position,
    parse_status,
    parse_temperatures,
)
from forgelink.units import Distance

# ---------------------------------------------------------------------------
# M115
# ---------------------------------------------------------------------------


class TestParseInfo:
    def test_full_reply(self):
        info = parse_info(INFO_PAYLOAD)
        assert info.machine_type == "FlashForge Adventurer III"
        assert info.machine_name == "Workshop"
        assert info.firmware == "v1.3.7"
        assert info.serial == "SNADVA9501234"
        assert info.x == info.y == info.z == Distance.from_mm(150)
        assert info.tool_count == 1
        assert info.mac_address == "88:A9:A7:90:12:34"

    def test_lines_in_any_order_with_blanks(self):
        lines = INFO_PAYLOAD.split("\r\n")
        shuffled = "\n\n".join(reversed(lines)) + "\n"
        assert parse_info(shuffled) == parse_info(INFO_PAYLOAD)

    def test_unknown_line(self):
        with pytest.raises(ParseFailure) as exc_info:
            parse_info(INFO_PAYLOAD + "\r\nNozzle: 0.4")
        assert exc_info.value.text == "Nozzle: 0.4"

    def test_malformed_build_volume(self):
        payload = INFO_PAYLOAD.replace("X: 150 Y: 150 Z: 150", "X: 150 Y: abc Z: 150")
        with pytest.raises(ParseFailure):
            parse_info(payload)

    def test_malformed_tool_count(self):
        payload = INFO_PAYLOAD.replace("Tool Count: 1", "Tool Count: one")
        with pytest.raises(ParseFailure) as exc_info:
            parse_info(payload)
        assert exc_info.value.text == "Tool Count: one"

    def test_missing_key(self):
        payload = "\r\n".join(line for line in INFO_PAYLOAD.split("\r\n") if not line.startswith("SN:"))
        with pytest.raises(ParseFailure, match="serial"):
            parse_info(payload)

    def test_missing_build_volume(self):
        payload = "\r\n".join(line for line in INFO_PAYLOAD.split("\r\n") if not line.startswith("X:"))
        with pytest.raises(ParseFailure, match="build volume"):
            parse_info(payload)

    def test_to_dict_uses_micrometres(self):
        data = parse_info(INFO_PAYLOAD).to_dict()
        assert data["x_um"] == 150_000
        assert data["serial"] == "SNADVA9501234"


# ---------------------------------------------------------------------------
# M119
# ---------------------------------------------------------------------------


class TestParseStatus:
    def test_ready(self):
        status = parse_status(STATUS_PAYLOAD)
        assert (status.endstop_x, status.endstop_y, status.endstop_z) == (0, 0, 0)
        assert status.machine_status == "READY"
        assert status.move_mode == "READY"
        assert status.flags == (("S", 0), ("L", 0), ("J", 0), ("F", 0))
        assert status.flag("L") == 0
        assert status.flag("Q") is None

    def test_building(self):
        payload = (
            "Endstop: X-max:1 Y-max:0 Z-max:1\r\n"
            "MachineStatus: BUILDING_FROM_SD\r\n"
            "MoveMode: MOVING\r\n"
            "Status: S:1 L:0 J:0 F:1"
        )
        status = parse_status(payload)
        assert status.endstop_x == 1
        assert status.machine_status == "BUILDING_FROM_SD"
        assert status.to_dict()["flags"] == {"S": 1, "L": 0, "J": 0, "F": 1}

    def test_unknown_line(self):
        with pytest.raises(ParseFailure) as exc_info:
            parse_status(STATUS_PAYLOAD + "\r\nLED: 1")
        assert exc_info.value.text == "LED: 1"

    def test_missing_line(self):
        payload = STATUS_PAYLOAD.replace("MoveMode: READY\r\n", "")
        with pytest.raises(ParseFailure):
            parse_status(payload)


# ---------------------------------------------------------------------------
# M114
# ---------------------------------------------------------------------------


class TestParsePosition:
    def test_decimals(self):
        pos = parse_position(POSITION_PAYLOAD)
        assert pos.x == -12_340
        assert pos.y == 500
        assert pos.z == 10_000
        assert (pos.a, pos.b) == (0, 0)

    def test_to_dict(self):
        assert parse_position(POSITION_PAYLOAD).to_dict() == {
            "x_um": -12_340,
            "y_um": 500,
            "z_um": 10_000,
            "a": 0,
            "b": 0,
        }

    @pytest.mark.parametrize(
        "payload",
        [
            "X:1 Y:2 Z:3 A:0",
            "X:1 Y:2 Z:3 A:0 B:0 C:0",
            "X:1.  Y:2 Z:3 A:0 B:0",
            "X:1 Y:2 Z:3 A:-1 B:0",
            "X: 1 Y:2 Z:3 A:0 B:0",
        ],
    )
    def test_malformed(self, payload):
        with pytest.raises(ParseFailure) as exc_info:
            parse_position(payload)
        assert exc_info.value.text == payload


# ---------------------------------------------------------------------------
# M105
# ---------------------------------------------------------------------------


class TestParseTemperatures:
    def test_reply(self):
        temps = parse_temperatures(TEMPERATURES_PAYLOAD)
        assert temps.extruder == 0
        assert temps.extruder_current == 205
        assert temps.extruder_target == 210
        assert temps.bed_current == 58
        assert temps.bed_target == 60

    @pytest.mark.parametrize("payload", ["T0:205/210 B:58/60", "T0:205 /210", "B:58/60 T0:205 /210", ""])
    def test_malformed(self, payload):
        with pytest.raises(ParseFailure):
            parse_temperatures(payload)


# ---------------------------------------------------------------------------
# M27 and empty replies
# ---------------------------------------------------------------------------


class TestParseJobStatus:
    def test_progress(self):
        job = parse_job_status("SD printing byte 250/1000")
        assert job.text == "SD printing byte 250/1000"
        assert job.progress == (250, 1000)
        assert job.completion == 25.0

    def test_verbatim_text(self):
        job = parse_job_status("Not SD printing.")
        assert job.progress is None
        assert job.completion is None
        assert job.to_dict()["text"] == "Not SD printing."

    def test_zero_total(self):
        assert parse_job_status("SD printing byte 0/0").completion == 0.0


class TestExpectEmpty:
    def test_empty(self):
        expect_empty("M146 r255 g255 b255 F0", "")

    def test_non_empty(self):
        with pytest.raises(ParseFailure, match="M26") as exc_info:
            expect_empty("M26", "Error: no job")
        assert exc_info.value.text == "Error: no job"

    def test_error_names_command_word(self):
        with pytest.raises(ParseFailure, match=r"unknown M146 reply"):
            expect_empty("M146 r0 g0 b0 F0", "Error")


class TestModuleDependencies:
    def test_parsers_do_not_import_transport(self):
        tree = ast.parse(inspect.getsource(replies))
        imported = {node.module for node in ast.walk(tree) if isinstance(node, ast.ImportFrom)}
        imported |= {alias.name for node in ast.walk(tree) if isinstance(node, ast.Import) for alias in node.names}
        assert "forgelink.transport" not in imported
