import datetime
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload
from . import models


# Bookings still waiting for (part of) their money
OPEN_BOOKING_STATUSES = [
    models.BookingStatus.DRAFT,
    models.BookingStatus.WAITING_PAYMENT,
    models.BookingStatus.PARTIAL_PAID,
]


def get_profile(db: Session, profile_id: int):
    return db.query(models.Profile).filter(models.Profile.id == profile_id).first()


def get_package(db: Session, package_id: int):
    return db.query(models.Package).filter(models.Package.id == package_id).first()


# --- Commission report ---

def get_commission_bookings(db: Session, start: datetime.datetime, end: datetime.datetime) -> list[models.Booking]:
    """
    Bookings created inside [start, end] that have a PIC assigned and
    were not cancelled.
    """
    return db.query(models.Booking).filter(
        models.Booking.pic_id.isnot(None),
        models.Booking.pic_type.isnot(None),
        models.Booking.status != models.BookingStatus.CANCELLED,
        models.Booking.created_at >= start,
        models.Booking.created_at <= end,
    ).order_by(models.Booking.created_at, models.Booking.id).all()


def count_pilgrims_by_booking(db: Session, booking_ids: list[int]) -> dict[int, int]:
    rows = db.query(
        models.BookingPilgrim.booking_id, func.count(models.BookingPilgrim.id)
    ).filter(
        models.BookingPilgrim.booking_id.in_(booking_ids)
    ).group_by(models.BookingPilgrim.booking_id).all()
    return {booking_id: count for booking_id, count in rows}


def get_commission_rates(db: Session, package_ids: list[int]) -> dict[tuple[int, models.PicType], int]:
    """
    Commission per pilgrim keyed by (package_id, pic_type).
    """
    rates = db.query(models.PackageCommission).filter(
        models.PackageCommission.package_id.in_(package_ids)
    ).all()
    return {(r.package_id, r.pic_type): r.commission_amount for r in rates}


def get_package_titles(db: Session, package_ids: list[int]) -> dict[int, str]:
    rows = db.query(models.Package.id, models.Package.title).filter(models.Package.id.in_(package_ids)).all()
    return {package_id: title for package_id, title in rows}


def _get_names(db: Session, model, ids: list[int]) -> dict[int, str]:
    rows = db.query(model.id, model.name).filter(model.id.in_(ids)).all()
    return {row_id: name for row_id, name in rows}


def get_branch_names(db: Session, branch_ids: list[int]) -> dict[int, str]:
    return _get_names(db, models.Branch, branch_ids)


def get_agent_names(db: Session, agent_ids: list[int]) -> dict[int, str]:
    return _get_names(db, models.Agent, agent_ids)


def get_profile_names(db: Session, profile_ids: list[int]) -> dict[int, str]:
    return _get_names(db, models.Profile, profile_ids)


def get_package_commissions(db: Session, package_id: int) -> dict[models.PicType, int]:
    """
    Rates for every PIC type of a package. Types without a row read as 0.
    """
    rates = {pic_type: 0 for pic_type in models.PicType}
    rows = db.query(models.PackageCommission).filter(models.PackageCommission.package_id == package_id).all()
    for row in rows:
        rates[row.pic_type] = row.commission_amount
    return rates


def upsert_package_commissions(db: Session, package_id: int, rates: dict[models.PicType, int]):
    """
    Writes one row per (package_id, pic_type), updating the existing row
    instead of inserting a second one.
    """
    for pic_type, amount in rates.items():
        existing = db.query(models.PackageCommission).filter(
            models.PackageCommission.package_id == package_id,
            models.PackageCommission.pic_type == pic_type,
        ).first()
        if existing:
            existing.commission_amount = amount
        else:
            db.add(models.PackageCommission(package_id=package_id, pic_type=pic_type, commission_amount=amount))
    db.commit()


# --- Reminder sweep ---

def get_reminder_candidates(db: Session) -> list[models.Booking]:
    """
    Open bookings with their package and departure loaded.
    """
    return db.query(models.Booking).options(
        joinedload(models.Booking.package),
        joinedload(models.Booking.departure),
    ).filter(
        models.Booking.status.in_(OPEN_BOOKING_STATUSES)
    ).order_by(models.Booking.id).all()


def get_paid_amount(db: Session, booking_id: int) -> int:
    total = db.query(func.sum(models.Payment.amount)).filter(
        models.Payment.booking_id == booking_id,
        models.Payment.status == models.PaymentStatus.PAID,
    ).scalar()
    return total or 0


def get_notification_types_since(db: Session, booking_id: int, since: datetime.datetime) -> set[models.NotificationType]:
    rows = db.query(models.Notification.type).filter(
        models.Notification.booking_id == booking_id,
        models.Notification.created_at >= since,
    ).all()
    return {notification_type for (notification_type,) in rows}


def add_notifications(db: Session, notifications: list[dict]) -> list[models.Notification]:
    """
    Adds the notifications to the session.
    Note: Does NOT commit. The sweep commits the whole batch at once.
    """
    db_notifications = [models.Notification(**n) for n in notifications]
    db.add_all(db_notifications)
    return db_notifications


# --- Notification inbox ---

def get_notifications_for_user(db: Session, user_id: int, limit: int = 20) -> list[models.Notification]:
    return db.query(models.Notification).filter(
        models.Notification.user_id == user_id
    ).order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).limit(limit).all()


def count_unread_notifications(db: Session, user_id: int) -> int:
    return db.query(models.Notification).filter(
        models.Notification.user_id == user_id,
        models.Notification.is_read.is_(False),
    ).count()


def mark_notification_read(db: Session, notification_id: int, user_id: int):
    db_notification = db.query(models.Notification).filter(
        models.Notification.id == notification_id,
        models.Notification.user_id == user_id,
    ).first()
    if db_notification:
        db_notification.is_read = True
        db.commit()
        db.refresh(db_notification)
    return db_notification


def mark_all_notifications_read(db: Session, user_id: int) -> int:
    updated = db.query(models.Notification).filter(
        models.Notification.user_id == user_id,
        models.Notification.is_read.is_(False),
    ).update({models.Notification.is_read: True}, synchronize_session=False)
    db.commit()
    return updated
