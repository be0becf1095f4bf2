"""Tests for the fan state controller."""

from __future__ import annotations

import pytest

from fanhub.control.controller import coerce_rpm, set_multiple, set_speed, set_status
from fanhub.errors import FanNotFound, ValidationError
from fanhub.floors import create_floor
from fanhub.provisioning.coordinator import add_fan
from fanhub.provisioning.validator import MAX_RPM


def _stored(conn, fan_id):
    return tuple(conn.execute("SELECT rpm, status FROM fans WHERE id = ?", (fan_id,)).fetchone())


class TestCoerceRpm:
    @pytest.mark.parametrize("value,expected", [(0, 0), (75, 75), (75.0, 75), (MAX_RPM, MAX_RPM)])
    def test_accepts(self, value, expected):
        assert coerce_rpm(value) == expected

    @pytest.mark.parametrize(
        "value", [None, -1, 1.5, "75", True, MAX_RPM + 1, 2 ** 70, 1e300, float("inf"), float("nan")]
    )
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            coerce_rpm(value)


class TestSetSpeed:
    def test_status_follows_rpm(self, conn, floor, fan):
        updated = set_speed(conn, floor["id"], fan["id"], 75)
        assert (updated["rpm"], updated["status"]) == (75, "ON")
        assert _stored(conn, fan["id"]) == (75, "ON")

        updated = set_speed(conn, floor["id"], fan["id"], 0)
        assert (updated["rpm"], updated["status"]) == (0, "OFF")
        assert _stored(conn, fan["id"]) == (0, "OFF")

    def test_negative_rpm_leaves_fan_untouched(self, conn, floor, fan):
        set_speed(conn, floor["id"], fan["id"], 40)
        with pytest.raises(ValidationError):
            set_speed(conn, floor["id"], fan["id"], -10)
        assert _stored(conn, fan["id"]) == (40, "ON")

    def test_unknown_fan(self, conn, floor):
        with pytest.raises(FanNotFound):
            set_speed(conn, floor["id"], "missing", 10)

    def test_fan_on_other_floor_is_not_found(self, conn, fan):
        other = create_floor(conn, "Roof")["floor"]
        with pytest.raises(FanNotFound):
            set_speed(conn, other["id"], fan["id"], 10)
        assert _stored(conn, fan["id"]) == (0, "OFF")

    def test_missing_ids(self, conn):
        with pytest.raises(ValidationError):
            set_speed(conn, "", "", 10)

    def test_ids_must_be_strings(self, conn, floor, fan):
        with pytest.raises(ValidationError):
            set_speed(conn, floor["id"], {"x": 1}, 10)
        with pytest.raises(ValidationError):
            set_speed(conn, [floor["id"]], fan["id"], 10)
        assert _stored(conn, fan["id"]) == (0, "OFF")


class TestSetStatus:
    def test_off_zeroes_rpm(self, conn, floor, fan):
        set_speed(conn, floor["id"], fan["id"], 60)
        updated = set_status(conn, floor["id"], fan["id"], "off")
        assert (updated["rpm"], updated["status"]) == (0, "OFF")

    def test_on_requires_rpm(self, conn, floor, fan):
        with pytest.raises(ValidationError):
            set_status(conn, floor["id"], fan["id"], "ON")
        assert _stored(conn, fan["id"]) == (0, "OFF")

    def test_on_with_rpm(self, conn, floor, fan):
        set_speed(conn, floor["id"], fan["id"], 60)
        assert set_status(conn, floor["id"], fan["id"], "ON")["status"] == "ON"

    def test_bad_value(self, conn, floor, fan):
        with pytest.raises(ValidationError):
            set_status(conn, floor["id"], fan["id"], "SPIN")

    def test_on_with_object_fan_id(self, conn, floor):
        with pytest.raises(ValidationError):
            set_status(conn, floor["id"], {"x": 1}, "ON")


class TestSetMultiple:
    def test_failures_are_isolated(self, conn, floor, model, fan):
        second = add_fan(conn, floor["id"], model["id"], 2, "South intake")
        summary = set_multiple(conn, floor["id"], [
            {"fanId": fan["id"], "rpm": 50},
            {"fanId": "missing", "rpm": 50},
            {"fanId": second["id"], "rpm": -3},
            {"fanId": second["id"], "rpm": 20},
        ])
        body = summary.to_dict()

        assert body["total"] == 4
        assert body["successCount"] == 2
        assert body["errorCount"] == 2
        assert [r["success"] for r in body["results"]] == [True, False, False, True]
        assert body["results"][1]["error"] == "Fan not found"
        assert _stored(conn, fan["id"]) == (50, "ON")
        assert _stored(conn, second["id"]) == (20, "ON")

    def test_out_of_range_rpm_and_object_id_do_not_stop_the_batch(self, conn, floor, model, fan):
        second = add_fan(conn, floor["id"], model["id"], 2, "South intake")
        summary = set_multiple(conn, floor["id"], [
            {"fanId": fan["id"], "rpm": 2 ** 70},
            {"fanId": {"x": 1}, "rpm": 10},
            {"fanId": second["id"], "rpm": 1e300},
            {"fanId": fan["id"], "rpm": 50},
        ])

        assert [r["success"] for r in summary.results] == [False, False, False, True]
        assert summary.results[1]["error"] == "floorId and fanId are required"
        assert _stored(conn, fan["id"]) == (50, "ON")
        assert _stored(conn, second["id"]) == (0, "OFF")

    def test_object_floor_id_is_not_found(self, conn, floor, fan):
        summary = set_multiple(conn, {"id": floor["id"]}, [{"fanId": fan["id"], "rpm": 10}])
        assert summary.floor_found is False
        assert _stored(conn, fan["id"]) == (0, "OFF")

    def test_unknown_floor_makes_no_attempts(self, conn, fan):
        summary = set_multiple(conn, "nope", [{"fanId": fan["id"], "rpm": 10}])
        assert summary.floor_found is False
        assert summary.results == []
        assert summary.total == 1
        assert _stored(conn, fan["id"]) == (0, "OFF")

    def test_non_object_item(self, conn, floor):
        summary = set_multiple(conn, floor["id"], ["oops"])
        assert summary.error_count == 1

    def test_items_must_be_list(self, conn, floor):
        with pytest.raises(ValidationError):
            set_multiple(conn, floor["id"], None)
