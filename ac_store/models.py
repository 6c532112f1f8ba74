# ac_store/models.py
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String(200), unique=True, nullable=False)
    password_hash = Column(String(200), nullable=True)  # NULL for Google-only accounts
    display_name = Column(String(200), nullable=True)
    google_sub = Column(String(64), unique=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    addresses = relationship("Address", back_populates="user", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="user")

class Address(Base):
    __tablename__ = "addresses"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(16), nullable=False, default="Home")  # Home|Work|Other
    line1 = Column(String(255), nullable=False)
    line2 = Column(String(255), nullable=True)
    city = Column(String(120), nullable=False)
    state = Column(String(120), nullable=False)
    zip_code = Column(String(20), nullable=False)
    country = Column(String(80), nullable=False, default="India")
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    user = relationship("User", back_populates="addresses")

class Appointment(Base):
    __tablename__ = "appointments"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # guests may book too
    name = Column(String(200), nullable=False)
    email = Column(String(200), nullable=False)
    phone = Column(String(32), nullable=False)
    address = Column(Text, nullable=False)
    service_type = Column(String(120), nullable=False)
    booking_date = Column(String(10), nullable=False)  # yyyy-MM-dd
    booking_time = Column(String(32), nullable=False)
    budget = Column(String(64), nullable=True)
    status = Column(String(32), nullable=False, default="Confirmed")
    payment_id = Column(String(64), nullable=True)
    price_paid = Column(Integer, nullable=True)  # paise
    created_at = Column(DateTime, default=datetime.utcnow)
    user = relationship("User", back_populates="appointments")
