"""Service appointment bookings."""
import re
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from ac_store.catalog import SERVICE_NAMES
from ac_store.models import Appointment

PHONE_RE = re.compile(r"^\+?\d{10,15}$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class AppointmentStatus(str, Enum):
    PAYMENT_PENDING = "Payment Pending"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class BookingRequest(BaseModel):
    name: str
    email: EmailStr
    phone: str
    address: str
    service_type: str
    booking_date: str
    booking_time: str
    budget: Optional[str] = None

    @field_validator("name", "address", "booking_time")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("phone")
    @classmethod
    def valid_phone(cls, v: str) -> str:
        digits = re.sub(r"[\s-]", "", v)
        if not PHONE_RE.match(digits):
            raise ValueError("must be 10 to 15 digits")
        return digits

    @field_validator("service_type")
    @classmethod
    def known_service(cls, v: str) -> str:
        if v not in SERVICE_NAMES:
            raise ValueError(f"unknown service: {v}")
        return v

    @field_validator("booking_date")
    @classmethod
    def not_in_past(cls, v: str) -> str:
        if not DATE_RE.match(v):
            raise ValueError("must be a date in yyyy-MM-dd form")
        if date.fromisoformat(v) < date.today():
            raise ValueError("must not be in the past")
        return v

    @field_validator("budget")
    @classmethod
    def blank_budget_is_none(cls, v: Optional[str]) -> Optional[str]:
        return (v or "").strip() or None


def book_appointment(engine, req: BookingRequest, user_id=None) -> int:
    with Session(engine) as db:
        a = Appointment(
            user_id=int(user_id) if user_id else None,
            name=req.name, email=str(req.email), phone=req.phone, address=req.address,
            service_type=req.service_type, booking_date=req.booking_date,
            booking_time=req.booking_time, budget=req.budget,
            status=AppointmentStatus.CONFIRMED.value,
        )
        db.add(a); db.commit()
        return a.id


def appointments_for(engine, user_id) -> list[Appointment]:
    with Session(engine, expire_on_commit=False) as db:
        return db.execute(
            select(Appointment).where(Appointment.user_id == int(user_id))
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
        ).scalars().all()
