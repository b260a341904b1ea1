"""Handler for POST /timeline."""

import json
import uuid

from pydantic import ValidationError as PydanticValidationError

from models.requests import TimelineRequest
from models.response import ApiResponse
from services.timeline_service import TimelineFilter, aggregate
from utils.error_handling import AppError, InternalServerError, ValidationError, to_response
from utils.logging_config import get_logger

logger = get_logger(__name__)


def lambda_handler(event, context):
    """Return the filtered account timeline, newest first."""
    correlation_id = str(uuid.uuid4())
    try:
        request = TimelineRequest.model_validate(json.loads(event.get("body") or "{}"))
        filters = None if request.filters is None else TimelineFilter.from_names(request.filters)
        events = aggregate(
            request.meetings,
            request.activities,
            request.products,
            success_plan=request.success_plan,
            active_filters=filters,
            today=request.today,
        )
        logger.info(
            "Timeline served",
            extra={"correlation_id": correlation_id, "events": len(events)},
        )
        return ApiResponse(
            message="ok",
            data=[item.model_dump(by_alias=True, mode="json") for item in events],
            correlation_id=correlation_id,
        ).to_lambda(200)

    except (ValueError, PydanticValidationError) as exc:
        return to_response(ValidationError("Invalid request", details=str(exc)), correlation_id)
    except AppError as exc:
        return to_response(exc, correlation_id)
    except Exception:
        logger.exception("Timeline failed", extra={"correlation_id": correlation_id})
        return to_response(InternalServerError("Timeline failed"), correlation_id)
