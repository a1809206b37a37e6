"""
Liveness and readiness endpoints.

/ping never touches dependencies. /health checks that the database answers
and reports whether payment gateway credentials are configured; only the
database decides the status code, since free tests and attempts work without
the gateway.
"""
import logging
from typing import Dict

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mockprep.core import settings
from mockprep.core.datetime_utils import utc_now
from mockprep.models import get_db
from mockprep.services.payment_gateway import PaymentGatewayConfig

logger = logging.getLogger(__name__)

router = APIRouter()


def check_database(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False


def payment_gateway_state() -> Dict[str, str]:
    config = PaymentGatewayConfig.from_settings(settings)
    configured = bool(config.app_id and config.secret_key)
    return {
        "status": "configured" if configured else "unconfigured",
        "environment": settings.PAYMENT_GATEWAY_ENVIRONMENT,
    }


@router.get("/health")
def health_check(response: Response, db: Session = Depends(get_db)):
    """
    Readiness check.

    Returns 503 with status "unhealthy" when the database is unreachable.
    """
    database_ok = check_database(db)
    if not database_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "healthy" if database_ok else "unhealthy",
        "timestamp": utc_now().isoformat(),
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "checks": {
            "database": "ok" if database_ok else "unavailable",
            "payment_gateway": payment_gateway_state(),
        },
    }


@router.get("/ping")
def ping():
    return {"message": "pong"}
