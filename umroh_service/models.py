from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Boolean, Date, TIMESTAMP,
    ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
import datetime

from .database import Base


# --- Enums ---
class UserRole(PyEnum):
    USER = "user"
    ADMIN = "admin"


class BookingStatus(PyEnum):
    DRAFT = "draft"
    WAITING_PAYMENT = "waiting_payment"
    PARTIAL_PAID = "partial_paid"
    PAID = "paid"
    CANCELLED = "cancelled"


class PaymentStatus(PyEnum):
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"


class PicType(PyEnum):
    CABANG = "cabang"      # branch
    AGEN = "agen"          # agent
    KARYAWAN = "karyawan"  # employee


class NotificationType(PyEnum):
    DP_REMINDER = "dp_reminder"
    FULL_REMINDER = "full_reminder"
    OVERDUE = "overdue"


# --- People / organisation ---
class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False)
    created_at = Column(TIMESTAMP, default=datetime.datetime.utcnow)


class Branch(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    city = Column(String(255), nullable=True)


class Agent(Base):
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)

    branch = relationship("Branch")


# --- Catalog ---
class Package(Base):
    __tablename__ = "packages"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    price = Column(BigInteger, nullable=False, default=0)

    # Days before departure by which the DP / full payment is due
    dp_deadline_days = Column(Integer, nullable=True, default=30)
    full_deadline_days = Column(Integer, nullable=True, default=7)

    departures = relationship("PackageDeparture", back_populates="package")


class PackageDeparture(Base):
    __tablename__ = "package_departures"

    id = Column(Integer, primary_key=True, index=True)
    package_id = Column(Integer, ForeignKey("packages.id"), index=True, nullable=False)
    departure_date = Column(Date, nullable=False)
    quota = Column(Integer, nullable=False, default=0)
    remaining_quota = Column(Integer, nullable=False, default=0)

    package = relationship("Package", back_populates="departures")


class PackageCommission(Base):
    __tablename__ = "package_commissions"

    id = Column(Integer, primary_key=True, index=True)
    package_id = Column(Integer, ForeignKey("packages.id"), index=True, nullable=False)
    pic_type = Column(SQLEnum(PicType), nullable=False)

    # Owed per pilgrim, in rupiah
    commission_amount = Column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("package_id", "pic_type", name="uq_package_commissions_package_pic_type"),
    )


# --- Bookings ---
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_code = Column(String(64), unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("profiles.id"), index=True, nullable=False)

    package_id = Column(Integer, ForeignKey("packages.id"), index=True, nullable=True)
    departure_id = Column(Integer, ForeignKey("package_departures.id"), nullable=True)

    # PIC ids point at branches, agents or profiles depending on pic_type.
    # No foreign key can be enforced for that.
    pic_id = Column(Integer, nullable=True)
    pic_type = Column(SQLEnum(PicType), nullable=True)

    total_price = Column(BigInteger, nullable=False, default=0)
    status = Column(SQLEnum(BookingStatus), default=BookingStatus.DRAFT, nullable=False)

    created_at = Column(TIMESTAMP, default=datetime.datetime.utcnow)

    package = relationship("Package")
    departure = relationship("PackageDeparture")

    __table_args__ = (
        Index("ix_bookings_status", "status"),
        Index("ix_bookings_created_at", "created_at"),
    )


class BookingPilgrim(Base):
    __tablename__ = "booking_pilgrims"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), index=True, nullable=False)
    name = Column(String(255), nullable=True)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), index=True, nullable=False)
    amount = Column(BigInteger, nullable=False)
    status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    created_at = Column(TIMESTAMP, default=datetime.datetime.utcnow)


# --- Notifications ---
class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), index=True, nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)

    type = Column(SQLEnum(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)

    created_at = Column(TIMESTAMP, default=datetime.datetime.utcnow)

    # The reminder sweep looks up a booking's notifications since midnight
    __table_args__ = (
        Index("ix_notifications_booking_created_at", "booking_id", "created_at"),
    )
