"""Lightweight validation helpers for import payloads."""

from typing import Any, Iterable, Sequence

from utils.error_handling import ValidationError


def ensure_present(value: Any, field: str) -> None:
    """Raise ValueError if value is falsy."""
    if value in (None, "", []):
        raise ValueError(f"{field} is required")


def require_columns(header: Sequence[str], required: Iterable[str], source: str) -> None:
    """Reject a whole file whose header lacks a required column."""
    missing = [column for column in required if column not in header]
    if missing:
        raise ValidationError(
            f"{source} is missing required column(s): {', '.join(missing)}",
            details={"missing": missing, "found": list(header)},
        )
