import pytest

from safisha.schemas import Booking, BookingFilters, BookingStatus
from safisha.shapes import ResponseShape, build_params, classify, decode_list, unwrap_item, unwrap_list

ITEMS = [{"id": 1}, {"id": 2}]


@pytest.mark.parametrize(
    "payload, shape",
    [
        (ITEMS, ResponseShape.ARRAY),
        ({"data": ITEMS}, ResponseShape.WRAPPED),
        ({"data": {"data": ITEMS}}, ResponseShape.DOUBLE_WRAPPED),
        ({"services": ITEMS}, ResponseShape.UNKNOWN),
        ({"data": None}, ResponseShape.UNKNOWN),
        (None, ResponseShape.UNKNOWN),
        ("oops", ResponseShape.UNKNOWN),
    ],
)
def test_classify(payload, shape):
    assert classify(payload) == shape


@pytest.mark.parametrize("payload", [ITEMS, {"data": ITEMS}, {"data": {"data": ITEMS}}])
def test_unwrap_list_accepts_all_known_shapes(payload):
    assert unwrap_list(payload) == ITEMS


def test_unwrap_list_unknown_shape_is_empty():
    assert unwrap_list({"services": ITEMS}, source="/services") == []
    assert unwrap_list({"message": "ok"}) == []


def test_unwrap_item_strips_envelopes_but_not_records():
    assert unwrap_item({"data": {"data": {"id": "x"}}}) == {"id": "x"}
    record = {"id": "x", "data": {"extra": 1}}
    assert unwrap_item(record) is record
    assert unwrap_item([1, 2]) == [1, 2]


def test_decode_list_drops_malformed_items():
    bookings = decode_list(Booking, {"data": [{"id": 1, "status": "PENDING"}, {"status": "pending"}]})

    assert len(bookings) == 1
    assert bookings[0].id == "1"
    assert bookings[0].status == BookingStatus.PENDING


def test_build_params_from_model():
    params = build_params(BookingFilters(status=BookingStatus.CONFIRMED, page=2))
    assert params == {"status": "confirmed", "page": "2"}


def test_build_params_from_mapping_with_renames():
    params = build_params(
        {"start_date": "2026-11-01", "end_date": None, "is_available": True},
        renames={"start_date": "date_from"},
    )
    assert params == {"date_from": "2026-11-01", "is_available": "true"}


def test_build_params_none():
    assert build_params(None) == {}
