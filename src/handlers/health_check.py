"""Health check handler; `?deep=true` also probes the CRM backend."""

import json
from datetime import datetime, timezone

from utils.error_handling import AppError
from utils.logging_config import get_logger
from utils.settings import Settings

logger = get_logger(__name__)


def _backend_status(settings: Settings) -> dict:
    from repositories.crm_api_repo import CrmApiRepository
    from services.auth_session import session_from_settings
    from utils.http_client import ResilientClient

    client = ResilientClient.from_settings(
        settings, session=session_from_settings(settings), retries=0
    )
    with client:
        return CrmApiRepository(client).health()


def lambda_handler(event, context):
    """Return 200 while the service is alive; 503 if a deep probe fails."""
    settings = Settings.from_environment()
    body = {
        "status": "ok",
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    status = 200

    query = event.get("queryStringParameters") or {}
    if str(query.get("deep", "")).lower() == "true":
        try:
            body["backend"] = _backend_status(settings)
        except AppError as exc:
            logger.warning("Backend health probe failed", extra={"error": str(exc)})
            body["status"] = "degraded"
            body["backend"] = {"status": "error", "code": exc.kind.value}
            status = 503

    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }
