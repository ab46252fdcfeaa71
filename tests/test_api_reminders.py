import datetime
from fastapi import HTTPException
from fastapi.testclient import TestClient
from fastapi_limiter import FastAPILimiter
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from unittest.mock import AsyncMock

from umroh_service import models
from umroh_service.database import get_db
from umroh_service.exceptions import FatalFetchError, NotificationWriteError
from umroh_service.main import app
from umroh_service.routers import reminder_router

NOW = datetime.datetime(2026, 3, 1, 8, 0, tzinfo=datetime.timezone.utc)


def seed_open_booking(db: Session, departure_in_days: int = 33) -> models.Booking:
    customer = models.Profile(name="Siti Aminah", email="siti@example.com")
    package = models.Package(title="Umroh Reguler 9 Hari", price=25_000_000)
    db.add_all([customer, package])
    db.flush()
    departure = models.PackageDeparture(
        package_id=package.id,
        departure_date=NOW.date() + datetime.timedelta(days=departure_in_days),
    )
    db.add(departure)
    db.flush()
    booking = models.Booking(
        booking_code="UMR-200",
        user_id=customer.id,
        package_id=package.id,
        departure_id=departure.id,
        total_price=25_000_000,
        status=models.BookingStatus.DRAFT,
    )
    db.add(booking)
    db.commit()
    return booking


def test_trigger_reminder_sweep(client: TestClient, db_session: Session, mocker):
    mocker.patch("umroh_service.reminder_scheduler.current_time", return_value=NOW)
    seed_open_booking(db_session)

    response = client.post("/functions/payment-reminder")

    assert response.status_code == 200
    assert response.json() == {"success": True, "notificationsCreated": 1}
    assert response.headers["access-control-allow-origin"] == "*"

    # Same day again: nothing new
    response = client.get("/functions/payment-reminder")
    assert response.json() == {"success": True, "notificationsCreated": 0}


def test_trigger_with_no_open_bookings(client: TestClient, mocker):
    mocker.patch("umroh_service.reminder_scheduler.current_time", return_value=NOW)

    response = client.post("/functions/payment-reminder")

    assert response.status_code == 200
    assert response.json() == {"success": True, "notificationsCreated": 0}


def test_trigger_reports_fetch_failure(client: TestClient, mocker):
    mocker.patch(
        "umroh_service.reminder_scheduler.run_reminder_sweep",
        side_effect=FatalFetchError("Could not load bookings: connection refused"),
    )

    response = client.post("/functions/payment-reminder")

    assert response.status_code == 500
    assert response.json() == {"error": "Could not load bookings: connection refused"}


def test_trigger_reports_write_failure(client: TestClient, mocker):
    mocker.patch(
        "umroh_service.reminder_scheduler.run_reminder_sweep",
        side_effect=NotificationWriteError("Could not save 2 notifications: disk full"),
    )

    response = client.post("/functions/payment-reminder")

    assert response.status_code == 500
    assert "error" in response.json()


def test_trigger_reports_unexpected_failure_as_json(db_session: Session, mocker):
    mocker.patch(
        "umroh_service.reminder_scheduler.run_reminder_sweep",
        side_effect=OperationalError("SELECT 1", {}, Exception("server closed the connection")),
    )
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[reminder_router.limit_sweep_rate] = lambda: None

    with TestClient(app, raise_server_exceptions=False) as c:
        response = c.post("/functions/payment-reminder")

    app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.headers["content-type"] == "application/json"
    assert "server closed the connection" in response.json()["error"]
    assert response.headers["access-control-allow-origin"] == "*"


def test_trigger_runs_when_rate_limiter_not_initialized(client: TestClient, mocker):
    mocker.patch("umroh_service.reminder_scheduler.current_time", return_value=NOW)
    mocker.patch.object(FastAPILimiter, "lua_sha", None)
    app.dependency_overrides.pop(reminder_router.limit_sweep_rate)

    response = client.post("/functions/payment-reminder")

    assert response.status_code == 200
    assert response.json() == {"success": True, "notificationsCreated": 0}


def test_trigger_runs_when_redis_is_down(client: TestClient, mocker):
    mocker.patch("umroh_service.reminder_scheduler.current_time", return_value=NOW)
    mocker.patch.object(FastAPILimiter, "lua_sha", "loaded")
    mocker.patch.object(reminder_router, "sweep_rate_limiter",
                        AsyncMock(side_effect=RedisConnectionError("Connection refused")))
    app.dependency_overrides.pop(reminder_router.limit_sweep_rate)

    response = client.post("/functions/payment-reminder")

    assert response.status_code == 200
    assert response.json()["success"] is True


def test_trigger_still_rate_limited(client: TestClient, mocker):
    mocker.patch.object(FastAPILimiter, "lua_sha", "loaded")
    mocker.patch.object(reminder_router, "sweep_rate_limiter",
                        AsyncMock(side_effect=HTTPException(status_code=429, detail="Too Many Requests")))
    sweep = mocker.patch("umroh_service.reminder_scheduler.run_reminder_sweep")
    app.dependency_overrides.pop(reminder_router.limit_sweep_rate)

    response = client.post("/functions/payment-reminder")

    assert response.status_code == 429
    sweep.assert_not_called()


def test_preflight(client: TestClient):
    response = client.options("/functions/payment-reminder")

    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == "*"
    assert "authorization" in response.headers["access-control-allow-headers"]


def test_root(client: TestClient):
    response = client.get("/")
    assert response.status_code == 200
    assert "Umroh" in response.json()["message"]
