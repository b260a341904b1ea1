"""Shared base model and lenient field types for CRM records."""

from __future__ import annotations

import math
from typing import Annotated, Any, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from utils.logging_config import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _to_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(number) else number


def _to_optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return _to_float(value)


def _to_int(value: Any) -> int:
    return int(_to_float(value))


def _to_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _to_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _to_text_list(value: Any) -> List[str]:
    return [item if isinstance(item, str) else str(item) for item in _to_list(value) if item is not None]


Number = Annotated[float, BeforeValidator(_to_float)]
OptionalNumber = Annotated[Optional[float], BeforeValidator(_to_optional_float)]
Count = Annotated[int, BeforeValidator(_to_int)]
Text = Annotated[Optional[str], BeforeValidator(_to_optional_str)]
TextList = Annotated[List[str], BeforeValidator(_to_text_list)]


class CrmModel(BaseModel):
    """
    Base for records owned by the CRM backend.

    Wire payloads are camelCase; unknown fields are kept so a record written
    back upstream carries everything the backend sent.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class DerivedModel(BaseModel):
    """Base for computed views; immutable once produced."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


def coerce_records(model_cls: Type[ModelT], items: Optional[Iterable[Any]]) -> List[ModelT]:
    """
    Validate raw records one by one, dropping the ones that cannot be read.

    Accepts model instances as-is so callers can pass either API payloads or
    already-typed collections.
    """
    records: List[ModelT] = []
    for item in items or []:
        if isinstance(item, model_cls):
            records.append(item)
            continue
        if not isinstance(item, dict):
            logger.warning(
                "Skipping non-object record",
                extra={"model": model_cls.__name__, "value_type": type(item).__name__},
            )
            continue
        try:
            records.append(model_cls.model_validate(item))
        except PydanticValidationError as exc:
            logger.warning(
                "Skipping unreadable record",
                extra={"model": model_cls.__name__, "errors": exc.error_count()},
            )
    return records


# Nested collections: a null or scalar payload degrades to an empty list.
as_list = BeforeValidator(_to_list)


def _to_object_list(value: Any) -> list:
    objects = []
    for item in _to_list(value):
        if isinstance(item, (dict, BaseModel)):
            objects.append(item)
            continue
        logger.warning("Dropping non-object nested entry", extra={"value_type": type(item).__name__})
    return objects


# Nested record lists: non-object entries are dropped so the parent survives.
as_records = BeforeValidator(_to_object_list)
