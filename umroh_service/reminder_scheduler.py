import asyncio
import logging
import math
import datetime
from zoneinfo import ZoneInfo
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .config import settings
from .database import SessionLocal, to_naive_utc
from .exceptions import FatalFetchError, NotificationWriteError

logger = logging.getLogger("reminder_scheduler")

# Used when a package leaves its deadlines empty
DEFAULT_DP_DEADLINE_DAYS = 30
DEFAULT_FULL_DEADLINE_DAYS = 7

# Reminders start SOFT_WINDOW_DAYS before a deadline and turn urgent
# in the last URGENT_WINDOW_DAYS
URGENT_WINDOW_DAYS = 3
SOFT_WINDOW_DAYS = 7

SECONDS_PER_DAY = 24 * 60 * 60


def current_time() -> datetime.datetime:
    return datetime.datetime.now(ZoneInfo(settings.REMINDER_TIMEZONE))


def format_rupiah(amount: int) -> str:
    """1500000 -> 'Rp 1.500.000'"""
    return "Rp " + f"{amount:,}".replace(",", ".")


def _as_aware(now: datetime.datetime) -> datetime.datetime:
    # Naive timestamps are taken to be UTC
    if now.tzinfo is None:
        return now.replace(tzinfo=datetime.timezone.utc)
    return now


def days_until(target: datetime.date, now: datetime.datetime) -> int:
    """
    Whole days, rounded up, from now until 00:00 UTC of the target date.
    """
    target_start = datetime.datetime.combine(target, datetime.time.min, tzinfo=datetime.timezone.utc)
    return math.ceil((target_start - now).total_seconds() / SECONDS_PER_DAY)


def start_of_day(now: datetime.datetime) -> datetime.datetime:
    """
    Midnight of now's own calendar day, as naive UTC for querying
    notifications.created_at.
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return to_naive_utc(midnight)


def _notification(booking: models.Booking, notification_type: models.NotificationType, title: str, message: str) -> dict:
    return {
        "user_id": booking.user_id,
        "booking_id": booking.id,
        "type": notification_type,
        "title": title,
        "message": message,
    }


def decide_reminders(
        booking: models.Booking,
        paid_amount: int,
        sent_today: set[models.NotificationType],
        now: datetime.datetime,
) -> list[dict]:
    """
    Returns the notifications one booking should get in this sweep.

    `sent_today` holds the notification types already recorded for the
    booking since midnight; it is not updated by what this call returns.
    Both overdue cases share the OVERDUE type, so one of them recorded
    today suppresses the other for the rest of the day.
    """
    remaining = booking.total_price - paid_amount
    if remaining <= 0:
        return []

    now = _as_aware(now)
    package = booking.package
    days_to_departure = days_until(booking.departure.departure_date, now)

    dp_deadline_days = package.dp_deadline_days or DEFAULT_DP_DEADLINE_DAYS
    full_deadline_days = package.full_deadline_days or DEFAULT_FULL_DEADLINE_DAYS
    days_to_dp = days_to_departure - max(dp_deadline_days, 0)
    days_to_full = days_to_departure - max(full_deadline_days, 0)

    label = f"Booking {booking.booking_code} - {package.title}"
    notifications = []

    # DP reminder
    if paid_amount == 0 and models.NotificationType.DP_REMINDER not in sent_today:
        if 0 < days_to_dp <= URGENT_WINDOW_DAYS:
            notifications.append(_notification(
                booking,
                models.NotificationType.DP_REMINDER,
                "⏰ Deadline DP Mendekat!",
                f"{label}: DP harus dibayar dalam {days_to_dp} hari lagi. "
                f"Sisa pembayaran: {format_rupiah(remaining)}",
            ))
        elif URGENT_WINDOW_DAYS < days_to_dp <= SOFT_WINDOW_DAYS:
            notifications.append(_notification(
                booking,
                models.NotificationType.DP_REMINDER,
                "📅 Reminder Pembayaran DP",
                f"{label}: Jangan lupa bayar DP sebelum {days_to_dp} hari dari sekarang.",
            ))

    # Full payment reminder
    if paid_amount > 0 and models.NotificationType.FULL_REMINDER not in sent_today:
        if 0 < days_to_full <= URGENT_WINDOW_DAYS:
            notifications.append(_notification(
                booking,
                models.NotificationType.FULL_REMINDER,
                "🚨 Deadline Pelunasan Mendekat!",
                f"{label}: Pelunasan harus selesai dalam {days_to_full} hari. "
                f"Sisa: {format_rupiah(remaining)}",
            ))
        elif URGENT_WINDOW_DAYS < days_to_full <= SOFT_WINDOW_DAYS:
            notifications.append(_notification(
                booking,
                models.NotificationType.FULL_REMINDER,
                "📅 Reminder Pelunasan",
                f"{label}: Segera lunasi pembayaran Anda. Sisa: {format_rupiah(remaining)}",
            ))

    # Overdue
    if days_to_dp < 0 and paid_amount == 0 and models.NotificationType.OVERDUE not in sent_today:
        notifications.append(_notification(
            booking,
            models.NotificationType.OVERDUE,
            "❌ Pembayaran Melewati Deadline!",
            f"{label}: Pembayaran DP sudah melewati deadline. Segera hubungi admin.",
        ))

    if days_to_full < 0 and paid_amount > 0 and models.NotificationType.OVERDUE not in sent_today:
        notifications.append(_notification(
            booking,
            models.NotificationType.OVERDUE,
            "❌ Pelunasan Melewati Deadline!",
            f"{label}: Pelunasan sudah melewati deadline. Segera hubungi admin.",
        ))

    return notifications


def run_reminder_sweep(db: Session, now: datetime.datetime) -> schemas.ReminderSweepResult:
    """
    Checks every open booking against its DP and full payment deadlines
    and records the reminders that are due, at most one per type per
    booking per day.

    All new notifications are committed together at the end.
    """
    now = _as_aware(now)
    logger.info(f"Starting payment reminder check at {now.isoformat()}...")

    try:
        bookings = crud.get_reminder_candidates(db)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching bookings: {e}")
        db.rollback()
        raise FatalFetchError(f"Could not load bookings: {e}") from e

    logger.info(f"Found {len(bookings)} bookings to check")

    today = start_of_day(now)
    pending = []

    for booking in bookings:
        # Expired again after a rollback for an earlier booking
        try:
            booking_code = booking.booking_code
            has_schedule = booking.package is not None and booking.departure is not None
        except SQLAlchemyError as e:
            logger.error(f"Error reloading booking details: {e}")
            db.rollback()
            raise FatalFetchError(f"Could not load bookings: {e}") from e

        if not has_schedule:
            logger.warning(f"Booking {booking_code} has no package or departure, skipping.")
            continue

        try:
            paid_amount = crud.get_paid_amount(db, booking.id)
            if booking.total_price - paid_amount <= 0:
                continue  # Already fully paid
            sent_today = crud.get_notification_types_since(db, booking.id, today)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load payment history for booking {booking_code}: {e}")
            db.rollback()
            continue  # Go to the next booking

        pending.extend(decide_reminders(booking, paid_amount, sent_today, now))

    if not pending:
        logger.info("No new notifications to create")
        return schemas.ReminderSweepResult(notifications_created=0)

    created_at = to_naive_utc(now)
    for notification in pending:
        notification["created_at"] = created_at

    try:
        crud.add_notifications(db, pending)
        db.commit()  # Commit all new notifications at once
    except SQLAlchemyError as e:
        logger.error(f"Error inserting notifications: {e}")
        db.rollback()
        raise NotificationWriteError(f"Could not save {len(pending)} notifications: {e}") from e

    logger.info(f"Created {len(pending)} notifications")
    return schemas.ReminderSweepResult(notifications_created=len(pending))


async def run_reminder_scheduler():
    """
    Background loop for deployments without an external cron.
    """
    while True:
        logger.info("Scheduler waking up to send payment reminders...")
        db: Session = SessionLocal()
        try:
            run_reminder_sweep(db, current_time())
        except Exception as e:
            logger.error(f"Error in reminder scheduler loop: {e}")
            db.rollback()
        finally:
            db.close()

        await asyncio.sleep(settings.REMINDER_POLL_INTERVAL_SECONDS)
