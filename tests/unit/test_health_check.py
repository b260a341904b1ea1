import json
from unittest.mock import patch

from handlers import health_check
from utils.error_handling import NetworkError


def test_health_check_returns_ok():
    resp = health_check.lambda_handler({}, None)
    assert resp["statusCode"] == 200
    assert "ok" in resp["body"]


def test_health_check_includes_environment():
    with patch.dict("os.environ", {"ENVIRONMENT": "test"}):
        body = json.loads(health_check.lambda_handler({}, None)["body"])
    assert body["environment"] == "test"


def test_deep_probe_reports_backend():
    with patch.object(health_check, "_backend_status", return_value={"status": "ok", "database": "mock"}):
        resp = health_check.lambda_handler({"queryStringParameters": {"deep": "true"}}, None)

    body = json.loads(resp["body"])
    assert resp["statusCode"] == 200
    assert body["backend"]["database"] == "mock"


def test_deep_probe_failure_is_degraded():
    with patch.object(health_check, "_backend_status", side_effect=NetworkError()):
        resp = health_check.lambda_handler({"queryStringParameters": {"deep": "true"}}, None)

    body = json.loads(resp["body"])
    assert resp["statusCode"] == 503
    assert body["status"] == "degraded"
    assert body["backend"]["code"] == "frontend-network"
