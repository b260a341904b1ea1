"""Handler for POST /reconcile."""

import json
import uuid

from pydantic import ValidationError as PydanticValidationError

from models.requests import ReconcileRequest
from models.response import ApiResponse
from services.reconciliation_service import FinancialReconciler
from utils.error_handling import AppError, InternalServerError, ValidationError, to_response
from utils.logging_config import get_logger

logger = get_logger(__name__)

_reconciler = FinancialReconciler()


def lambda_handler(event, context):
    """Fold the posted ledgers into the accounts' product snapshots."""
    correlation_id = str(uuid.uuid4())
    try:
        request = ReconcileRequest.model_validate(json.loads(event.get("body") or "{}"))
        result = _reconciler.reconcile(
            request.accounts, request.financial_records, request.ticket_records
        )
        logger.info(
            "Reconciliation served",
            extra={
                "correlation_id": correlation_id,
                "changed_accounts": len(result.changed_account_ids),
            },
        )
        return ApiResponse(
            message="reconciled" if result.touched else "unchanged",
            data=result.model_dump(by_alias=True, mode="json"),
            correlation_id=correlation_id,
        ).to_lambda(200)

    except (ValueError, PydanticValidationError) as exc:
        return to_response(ValidationError("Invalid request", details=str(exc)), correlation_id)
    except AppError as exc:
        return to_response(exc, correlation_id)
    except Exception:
        logger.exception("Reconciliation failed", extra={"correlation_id": correlation_id})
        return to_response(InternalServerError("Reconciliation failed"), correlation_id)
