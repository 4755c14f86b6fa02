from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, Text, ForeignKey, Numeric, JSON,
    UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from src.database import Base
from src.utils import utcnow

# ================================
# Users & Roles
# ================================
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50))
    password = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user_roles = relationship("UserHasRole", back_populates="user", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="customer")
    notification_preferences = relationship(
        "NotificationPreferences", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    user_roles = relationship("UserHasRole", back_populates="role")

class UserHasRole(Base):
    __tablename__ = "user_has_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id", name="uq_user_role"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    user = relationship("User", back_populates="user_roles")
    role = relationship("Role", back_populates="user_roles")

class NotificationPreferences(Base):
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    email_booking_confirmation = Column(Boolean, default=True, nullable=False)
    email_trip_reminders = Column(Boolean, default=True, nullable=False)
    email_cancellations = Column(Boolean, default=True, nullable=False)
    reminder_lead_hours = Column(Integer, default=24, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="notification_preferences")

# ================================
# Fleet & Routes
# ================================
class Bus(Base):
    __tablename__ = "buses"

    id = Column(Integer, primary_key=True, index=True)
    plate_number = Column(String(20), unique=True, nullable=False)
    bus_type = Column(String(50), nullable=False)
    total_seats = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    schedules = relationship("Schedule", back_populates="bus")

class Route(Base):
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True)
    route_no = Column(Integer, unique=True, nullable=False)
    origin = Column(String(255), nullable=False, index=True)
    destination = Column(String(255), nullable=False, index=True)
    distance_km = Column(Numeric(8, 2))
    duration_minutes = Column(Integer)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    schedules = relationship("Schedule", back_populates="route")

# ================================
# Schedules
# ================================
class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (
        CheckConstraint("available_seats >= 0", name="ck_schedules_available_seats"),
        Index("ix_schedules_cities_departure", "departure_city", "arrival_city", "departure_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False)
    bus_id = Column(Integer, ForeignKey("buses.id"), nullable=False)
    departure_city = Column(String(255), nullable=False)
    arrival_city = Column(String(255), nullable=False)
    departure_at = Column(DateTime, nullable=False, index=True)
    arrival_at = Column(DateTime, nullable=False)
    booking_closes_at = Column(DateTime, nullable=False)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    price_per_seat = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), default="Scheduled", nullable=False, index=True)
    departed_at = Column(DateTime)
    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    cancelled_by = Column(Integer, ForeignKey("users.id"))
    cancellation_reason = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    route = relationship("Route", back_populates="schedules")
    bus = relationship("Bus", back_populates="schedules")
    bookings = relationship("Booking", back_populates="schedule")

# ================================
# Seat Locks
# ================================
class SeatLock(Base):
    """Short-lived exclusive hold on one seat.

    A row whose ``expires_at`` is not in the future is semantically absent:
    availability queries ignore it and ``lock`` deletes it before inserting.
    """
    __tablename__ = "seat_locks"
    __table_args__ = (
        UniqueConstraint("schedule_id", "seat_number", name="uq_seat_locks_schedule_seat"),
        Index("ix_seat_locks_expires_at", "expires_at"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False)
    seat_number = Column(Integer, nullable=False)
    session_id = Column(String(128), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"))
    locked_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

# ================================
# Bookings
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_reference = Column(String(40), unique=True, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), index=True)
    guest_name = Column(String(255))
    guest_email = Column(String(255), index=True)
    guest_phone = Column(String(50))
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    session_id = Column(String(128))
    seat_numbers = Column(JSON, nullable=False)
    passengers = Column(JSON, nullable=False)
    fare = Column(Numeric(14, 2), nullable=False)
    convenience_fee = Column(Numeric(14, 2), nullable=False)
    bank_charge = Column(Numeric(14, 2), nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="VND")
    pickup_point = Column(String(255))
    dropoff_point = Column(String(255))
    status = Column(String(20), default="pending", nullable=False, index=True)
    expires_at = Column(DateTime, index=True)
    confirmed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    cancellation_reason = Column(Text)
    completed_at = Column(DateTime)
    reminder_sent_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    customer = relationship("User", back_populates="bookings")
    schedule = relationship("Schedule", back_populates="bookings")
    booked_seats = relationship("BookingSeat", back_populates="booking", cascade="all, delete-orphan")

class BookingSeat(Base):
    """Durable claim of one seat by a pending, confirmed or completed booking.

    The unique constraint is what keeps two active bookings off the same seat;
    rows are deleted when their booking is cancelled or expires.
    """
    __tablename__ = "booking_seats"
    __table_args__ = (
        UniqueConstraint("schedule_id", "seat_number", name="uq_booking_seats_schedule_seat"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False)
    seat_number = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    booking = relationship("Booking", back_populates="booked_seats")
