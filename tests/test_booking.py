from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from ac_store.booking import AppointmentStatus, BookingRequest, appointments_for, book_appointment


def form(**overrides):
    data = {
        "name": "Ravi", "email": "ravi@example.com", "phone": "98765 43210",
        "address": "4 Lake View, Pune", "service_type": "Gas Charging",
        "booking_date": (date.today() + timedelta(days=2)).isoformat(),
        "booking_time": "10:00 AM - 12:00 PM", "budget": "",
    }
    data.update(overrides)
    return data


def test_valid_request_normalises():
    req = BookingRequest(**form())
    assert req.phone == "9876543210"
    assert req.budget is None


@pytest.mark.parametrize("field,value", [
    ("phone", "12345"),
    ("email", "not-an-email"),
    ("service_type", "Teleportation"),
    ("booking_date", (date.today() - timedelta(days=1)).isoformat()),
    ("booking_date", "02/03/2030"),
    ("name", "   "),
])
def test_invalid_fields(field, value):
    with pytest.raises(ValidationError) as exc:
        BookingRequest(**form(**{field: value}))
    assert exc.value.errors()[0]["loc"] == (field,)


def test_today_is_allowed():
    assert BookingRequest(**form(booking_date=date.today().isoformat()))


def test_book_and_list(engine, alice):
    first = book_appointment(engine, BookingRequest(**form()), user_id=alice.uid)
    second = book_appointment(engine, BookingRequest(**form(service_type="Dry Service")), user_id=alice.uid)
    book_appointment(engine, BookingRequest(**form()))
    rows = appointments_for(engine, alice.uid)
    assert [a.id for a in rows] == [second, first]
    assert rows[0].status == AppointmentStatus.CONFIRMED.value
