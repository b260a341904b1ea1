"""Handlers for POST /imports/{accounts,financials,tickets}."""

from __future__ import annotations

import json
import uuid
from typing import Callable

from pydantic import ValidationError as PydanticValidationError

from models.derived import ImportResult
from models.requests import ImportRequest
from models.response import ApiResponse
from services import import_service
from utils.error_handling import AppError, InternalServerError, ValidationError, to_response
from utils.logging_config import get_logger

logger = get_logger(__name__)


def _handle(event, kind: str, run: Callable[[ImportRequest], ImportResult]):
    correlation_id = str(uuid.uuid4())
    try:
        request = ImportRequest.model_validate(json.loads(event.get("body") or "{}"))
        result = run(request)
        logger.info(
            "Import applied",
            extra={
                "correlation_id": correlation_id,
                "kind": kind,
                "created_count": result.created_count,
                "updated_count": result.updated_count,
                "skipped_count": result.skipped_count,
            },
        )
        return ApiResponse(
            message=f"{kind} imported",
            data=result.model_dump(by_alias=True, mode="json"),
            correlation_id=correlation_id,
        ).to_lambda(200)

    except AppError as exc:
        return to_response(exc, correlation_id)
    except (ValueError, PydanticValidationError) as exc:
        return to_response(ValidationError("Invalid request", details=str(exc)), correlation_id)
    except Exception:
        logger.exception("Import failed", extra={"correlation_id": correlation_id, "kind": kind})
        return to_response(InternalServerError("Import failed"), correlation_id)


def accounts_handler(event, context):
    """Upsert accounts from `csv` into `accounts`."""
    return _handle(
        event,
        "accounts",
        lambda request: import_service.import_accounts(request.accounts, request.csv or ""),
    )


def financials_handler(event, context):
    """Upsert ledger lines from `text` into `financialRecords`."""
    return _handle(
        event,
        "financials",
        lambda request: import_service.import_financials(
            request.financial_records, request.text or "", request.accounts
        ),
    )


def tickets_handler(event, context):
    """Upsert ticket lines from `text` into `ticketRecords`."""
    return _handle(
        event,
        "tickets",
        lambda request: import_service.import_tickets(
            request.ticket_records, request.text or "", request.accounts, now=request.now
        ),
    )
