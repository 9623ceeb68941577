"""
Fleet directory tests: activity resolution and record access.
"""

import pytest

from fleetfit.core.errors import ValidationError
from fleetfit.core.fleet import get_driver, get_load, list_drivers, resolve_activity, upsert_driver, upsert_load
from fleetfit.core.schema import BooleanActive, LoadRecord, StatusActive, UnknownActive


@pytest.mark.parametrize("record,expected", [
    ({"active": True}, BooleanActive(True)),
    ({"active": False, "status": "active"}, BooleanActive(False)),
    ({"active": "TRUE"}, BooleanActive(True)),
    ({"active": "0", "status": "ready"}, BooleanActive(False)),
    ({"status": "Available"}, StatusActive("available", True)),
    ({"status": "suspended"}, StatusActive("suspended", False)),
    ({"active": "maybe", "status": "terminated"}, StatusActive("terminated", False)),
    ({"status": "on_vacation"}, UnknownActive()),
    ({}, UnknownActive()),
    ({"active": None, "status": 3}, UnknownActive()),
])
def test_resolve_activity_precedence(record, expected):
    assert resolve_activity(record) == expected


def test_driver_without_activity_signal_is_eligible():
    upsert_driver("D9", "Nameless Driver")
    assert get_driver("D9").eligible is True


def test_inactive_status_not_eligible():
    upsert_driver("D8", "Parked Driver", status="disabled")
    assert get_driver("D8").eligible is False


def test_driver_record_fields():
    upsert_driver("D1", "Alice", active="true", equipment="flatbed", home_region="TX",
                  preferred_regions=["OK", ""], max_distance="450")

    record = get_driver("D1")
    assert record.full_name == "Alice"
    assert record.equipment == "flatbed"
    assert record.preferred_regions == ("OK",)
    assert record.max_distance == 450.0


def test_upsert_driver_replaces_record():
    upsert_driver("D1", "Alice", status="active")
    upsert_driver("D1", "Alice B.", status="inactive")

    drivers = list_drivers()
    assert len(drivers) == 1
    assert drivers[0].full_name == "Alice B."
    assert drivers[0].eligible is False


def test_missing_records():
    assert get_driver("nobody") is None
    assert get_load("nothing") is None


def test_load_round_trip():
    upsert_load(LoadRecord(load_id="L1", lane_origin="Tulsa", lane_dest="Wichita", miles=180))

    load = get_load("L1")
    assert load.lane_key == "tulsa → wichita"
    assert load.miles == 180


def test_blank_ids_rejected():
    with pytest.raises(ValidationError):
        upsert_driver("", "No Id")
    with pytest.raises(ValidationError):
        upsert_load(LoadRecord(load_id=" "))
