import logging
import datetime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .database import to_naive_utc
from .exceptions import FatalFetchError

logger = logging.getLogger("commission_report")

# Shown when a package title or PIC name can't be resolved
UNKNOWN = "-"

# Each PIC type has its own registry of names
PIC_NAME_LOOKUPS = {
    models.PicType.CABANG: crud.get_branch_names,
    models.PicType.AGEN: crud.get_agent_names,
    models.PicType.KARYAWAN: crud.get_profile_names,
}


def report_window(start_date: datetime.date, end_date: datetime.date) -> tuple[datetime.datetime, datetime.datetime]:
    """
    Turns the requested period into timestamps comparable with
    bookings.created_at. A plain date end covers that whole day.
    """
    if isinstance(start_date, datetime.datetime):
        start = start_date
    else:
        start = datetime.datetime.combine(start_date, datetime.time.min)
    if isinstance(end_date, datetime.datetime):
        end = end_date
    else:
        end = datetime.datetime.combine(end_date, datetime.time.max)

    start, end = to_naive_utc(start), to_naive_utc(end)
    if start > end:
        raise ValueError("start_date must not be after end_date")
    return start, end


def _degraded_lookup(label: str, lookup, db: Session, ids: list) -> dict:
    """
    Runs an enrichment query. On failure the report carries on without it.
    """
    if not ids:
        return {}
    try:
        return lookup(db, ids)
    except SQLAlchemyError as e:
        logger.warning(f"{label} lookup failed, continuing without it: {e}")
        db.rollback()
        return {}


def resolve_pic_names(db: Session, bookings: list[models.Booking]) -> dict[tuple[models.PicType, int], str]:
    ids_by_type: dict[models.PicType, set[int]] = {}
    for booking in bookings:
        ids_by_type.setdefault(booking.pic_type, set()).add(booking.pic_id)

    names = {}
    for pic_type, pic_ids in ids_by_type.items():
        lookup = PIC_NAME_LOOKUPS[pic_type]
        found = _degraded_lookup(f"{pic_type.value} name", lookup, db, sorted(pic_ids))
        for pic_id, name in found.items():
            names[(pic_type, pic_id)] = name
    return names


def compute_commissions(db: Session, start_date: datetime.date, end_date: datetime.date) -> schemas.CommissionReport:
    """
    Builds the commission report for bookings created in the period.

    Every booking with a PIC gets one row (commission = rate per pilgrim
    x pilgrims, 0 when the package has no rate for that PIC type). Rows are
    then summed per PIC and per PIC type.

    Only a failure to load the bookings themselves aborts the report.
    """
    start, end = report_window(start_date, end_date)

    try:
        bookings = crud.get_commission_bookings(db, start, end)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load bookings for commission report: {e}")
        db.rollback()
        raise FatalFetchError(f"Could not load bookings: {e}") from e

    if not bookings:
        logger.info(f"No commissionable bookings between {start} and {end}.")
        return schemas.CommissionReport()

    logger.info(f"Computing commissions for {len(bookings)} bookings between {start} and {end}.")

    booking_ids = [b.id for b in bookings]
    package_ids = sorted({b.package_id for b in bookings if b.package_id is not None})

    pilgrim_counts = _degraded_lookup("pilgrim count", crud.count_pilgrims_by_booking, db, booking_ids)
    rates = _degraded_lookup("commission rate", crud.get_commission_rates, db, package_ids)
    package_titles = _degraded_lookup("package title", crud.get_package_titles, db, package_ids)
    pic_names = resolve_pic_names(db, bookings)

    rows = []
    summaries: dict[tuple[models.PicType, int], schemas.CommissionSummary] = {}
    totals = schemas.CommissionTotals()

    for booking in bookings:
        pic_key = (booking.pic_type, booking.pic_id)
        per_pilgrim = rates.get((booking.package_id, booking.pic_type), 0)
        pilgrim_count = pilgrim_counts.get(booking.id, 0)
        commission = per_pilgrim * pilgrim_count
        pic_name = pic_names.get(pic_key, UNKNOWN)

        rows.append(schemas.CommissionRow(
            booking_code=booking.booking_code,
            package_title=package_titles.get(booking.package_id, UNKNOWN),
            pic_id=booking.pic_id,
            pic_name=pic_name,
            pic_type=booking.pic_type,
            pilgrim_count=pilgrim_count,
            commission_per_pilgrim=per_pilgrim,
            total_commission=commission,
        ))

        summary = summaries.get(pic_key)
        if summary is None:
            summary = schemas.CommissionSummary(pic_type=booking.pic_type, pic_id=booking.pic_id, pic_name=pic_name)
            summaries[pic_key] = summary
        summary.total_pilgrims += pilgrim_count
        summary.total_commission += commission

        type_field = booking.pic_type.value
        setattr(totals, type_field, getattr(totals, type_field) + commission)
        totals.grand += commission

    # sorted() is stable, so equal totals keep first-seen order
    ordered = sorted(summaries.values(), key=lambda s: s.total_commission, reverse=True)

    return schemas.CommissionReport(rows=rows, summaries=ordered, totals=totals)
