"""Handler for POST /notifications."""

import json
import uuid

from pydantic import ValidationError as PydanticValidationError

from models.requests import NotificationsRequest
from models.response import ApiResponse
from services.notification_service import compute_notifications
from utils.error_handling import AppError, InternalServerError, ValidationError, to_response
from utils.logging_config import get_logger
from utils.settings import Settings

logger = get_logger(__name__)


def lambda_handler(event, context):
    """Compute the alert feed for the posted collections."""
    correlation_id = str(uuid.uuid4())
    try:
        request = NotificationsRequest.model_validate(json.loads(event.get("body") or "{}"))
        include_activity_alerts = request.include_activity_alerts
        if include_activity_alerts is None:
            include_activity_alerts = Settings.from_environment().activity_alerts_enabled

        notifications = compute_notifications(
            request.tickets,
            request.financial_records,
            request.meetings,
            request.accounts,
            now=request.now,
            include_activity_alerts=include_activity_alerts,
        )
        logger.info(
            "Notifications served",
            extra={"correlation_id": correlation_id, "count": len(notifications)},
        )
        return ApiResponse(
            message="ok",
            data=[item.model_dump(by_alias=True, mode="json") for item in notifications],
            correlation_id=correlation_id,
        ).to_lambda(200)

    except (ValueError, PydanticValidationError) as exc:
        return to_response(ValidationError("Invalid request", details=str(exc)), correlation_id)
    except AppError as exc:
        return to_response(exc, correlation_id)
    except Exception:
        logger.exception("Notifications failed", extra={"correlation_id": correlation_id})
        return to_response(InternalServerError("Notifications failed"), correlation_id)
