"""Common response wrapper for the HTTP handlers."""

import json
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ApiResponse(BaseModel):
    """Envelope for every successful handler response."""

    message: str
    data: Optional[Any] = None
    correlation_id: Optional[str] = None

    def to_lambda(self, status: int = 200) -> Dict[str, Any]:
        """Render as an API Gateway proxy response."""
        return {
            "statusCode": status,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(self.model_dump(mode="json"), default=str),
        }
