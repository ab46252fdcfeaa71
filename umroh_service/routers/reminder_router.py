import logging
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import reminder_scheduler
from ..auth import get_key_by_user_id_or_ip
from ..database import get_db
from ..exceptions import FatalFetchError, NotificationWriteError

from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from redis.exceptions import RedisError

logger = logging.getLogger("umroh_service")

router = APIRouter(prefix="/functions", tags=["Reminders"])

# The endpoint is called straight from browsers and cron services alike
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

sweep_rate_limiter = RateLimiter(times=10, minutes=1, identifier=get_key_by_user_id_or_ip)


async def limit_sweep_rate(request: Request, response: Response):
    """
    Applies sweep_rate_limiter while Redis is reachable. Without Redis the
    sweep still runs, unthrottled.
    """
    if FastAPILimiter.lua_sha is None:
        logger.warning("Rate limiter is not initialized, running sweep without it.")
        return
    try:
        await sweep_rate_limiter(request, response)
    except RedisError as e:
        logger.warning(f"Rate limiter unavailable, running sweep without it: {e}")


def _error_response(e: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": str(e)},
        headers=CORS_HEADERS,
    )


@router.options("/payment-reminder")
def payment_reminder_preflight():
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


@router.api_route("/payment-reminder", methods=["GET", "POST"])
def trigger_payment_reminder(
        db: Session = Depends(get_db),
        limit: None = Depends(limit_sweep_rate)
):
    """
    Runs one payment reminder sweep. No request body is needed.
    """
    try:
        result = reminder_scheduler.run_reminder_sweep(db, reminder_scheduler.current_time())
    except (FatalFetchError, NotificationWriteError) as e:
        logger.error(f"Error in payment-reminder function: {e}")
        return _error_response(e)
    except Exception as e:
        logger.exception(f"Unexpected error in payment-reminder function: {e}")
        return _error_response(e)

    return JSONResponse(
        content={"success": True, "notificationsCreated": result.notifications_created},
        headers=CORS_HEADERS,
    )
