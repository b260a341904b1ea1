"""
Single entrypoint Lambda that routes HTTP API requests to thin handler modules.

Every route is a pure derivation over the posted collections, so one Lambda
serves them all and keeps module-level state warm between routes.
"""

from typing import Callable, Dict, Tuple
import json

from . import health_check, imports, notifications, reconciliation, timeline


def _response(status: int, body: Dict) -> Dict:
    """Format a JSON API Gateway HTTP API response."""
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def lambda_handler(event, context):
    """
    Entry point invoked by API Gateway HTTP API.

    The event carries the HTTP method and path; the first route key prefix
    that matches wins.
    """
    method = event.get("requestContext", {}).get("http", {}).get("method", "")
    path = event.get("requestContext", {}).get("http", {}).get("path", "")
    route_key = f"{method.upper()} {path}"

    route_table: Tuple[Tuple[str, Callable], ...] = (
        ("GET /health", health_check.lambda_handler),
        ("POST /timeline", timeline.lambda_handler),
        ("POST /notifications", notifications.lambda_handler),
        ("POST /reconcile", reconciliation.lambda_handler),
        ("POST /imports/accounts", imports.accounts_handler),
        ("POST /imports/financials", imports.financials_handler),
        ("POST /imports/tickets", imports.tickets_handler),
    )

    for prefix, handler in route_table:
        if route_key.startswith(prefix):
            return handler(event, context)

    return _response(404, {"message": "Route not found", "route": route_key})
