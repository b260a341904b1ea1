"""
Bulk import reconciliation.

Merges externally sourced batches (account CSV, financial lines, ticket lines)
into the canonical collections with upsert semantics: match by id first, then
by a case-insensitive natural key; matched records are shallow-merged,
unmatched ones are created. The existing collection is never modified in
place; callers replace their state with the returned list.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from models.account import Account
from models.common import coerce_records
from models.derived import ImportResult
from models.ledger import FinancialRecord, TicketRecord
from utils.logging_config import get_logger
from utils.record_parsers import (
    ParsedBatch,
    parse_account_csv,
    parse_financial_rows,
    parse_ticket_rows,
)

logger = get_logger(__name__)

MatchKey = Callable[[BaseModel], Optional[Hashable]]


def field_key(*fields: str) -> MatchKey:
    """
    Natural key over one or more fields, compared case-insensitively.

    A record with any of the fields empty has no natural key.
    """

    def key(record: BaseModel) -> Optional[Hashable]:
        values = []
        for name in fields:
            value = getattr(record, name, None)
            text = "" if value is None else str(value).strip().lower()
            if not text:
                return None
            values.append(text)
        return values[0] if len(values) == 1 else tuple(values)

    return key


ACCOUNT_NAME_KEY = field_key("name")
TICKET_EXTERNAL_ID_KEY = field_key("external_id")
# One meaningful ledger entry per (account, product, date).
FINANCIAL_ENTRY_KEY = field_key("account_id", "product_id", "date")


def new_record_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:9]}"


def overlay(existing: BaseModel, incoming: BaseModel) -> BaseModel:
    """Shallow merge: fields set on the incoming record win, the rest are kept."""
    update: Dict[str, Any] = {
        name: getattr(incoming, name) for name in incoming.model_fields_set
    }
    update.update(incoming.model_extra or {})
    if not update.get("id"):
        update.pop("id", None)
    return existing.model_copy(update=update)


class ImportReconciler:
    """Upsert merge for one record type."""

    def __init__(self, model_cls: Type[BaseModel], match_key: MatchKey, id_prefix: str):
        self.model_cls = model_cls
        self.match_key = match_key
        self.id_prefix = id_prefix

    def merge(
        self, existing: Optional[Iterable[Any]], incoming: Optional[Iterable[Any]]
    ) -> ImportResult:
        merged: List[BaseModel] = list(coerce_records(self.model_cls, existing))
        by_id: Dict[str, int] = {}
        by_key: Dict[Hashable, int] = {}

        def register(pos: int, record: BaseModel) -> None:
            record_id = getattr(record, "id", None)
            if record_id and record_id not in by_id:
                by_id[record_id] = pos
            key = self.match_key(record)
            if key is not None and key not in by_key:
                by_key[key] = pos

        def forget(pos: int, record: BaseModel) -> None:
            record_id = getattr(record, "id", None)
            if record_id and by_id.get(record_id) == pos:
                del by_id[record_id]
            key = self.match_key(record)
            if key is not None and by_key.get(key) == pos:
                del by_key[key]

        for pos, record in enumerate(merged):
            register(pos, record)

        created = updated = skipped = 0
        errors: List[str] = []
        for number, item in enumerate(incoming or [], start=1):
            record = self._read(item)
            if record is None:
                skipped += 1
                errors.append(f"record {number}: unreadable {self.model_cls.__name__}")
                continue

            pos = self._find(record, by_id, by_key)
            if pos is not None:
                current = merged[pos]
                forget(pos, current)
                merged[pos] = overlay(current, record)
                register(pos, merged[pos])
                updated += 1
                continue

            if not getattr(record, "id", None):
                record = record.model_copy(update={"id": new_record_id(self.id_prefix)})
            merged.append(record)
            register(len(merged) - 1, record)
            created += 1

        logger.info(
            "Import batch merged",
            extra={
                "record_type": self.model_cls.__name__,
                "created_count": created,
                "updated_count": updated,
                "skipped_count": skipped,
            },
        )
        return ImportResult(
            merged=merged,
            created_count=created,
            updated_count=updated,
            skipped_count=skipped,
            errors=tuple(errors),
        )

    def _read(self, item: Any) -> Optional[BaseModel]:
        if isinstance(item, self.model_cls):
            return item
        if not isinstance(item, dict):
            return None
        try:
            return self.model_cls.model_validate(item)
        except PydanticValidationError:
            return None

    def _find(
        self, record: BaseModel, by_id: Dict[str, int], by_key: Dict[Hashable, int]
    ) -> Optional[int]:
        record_id = getattr(record, "id", None)
        if record_id and record_id in by_id:
            return by_id[record_id]
        key = self.match_key(record)
        if key is not None:
            return by_key.get(key)
        return None


account_importer = ImportReconciler(Account, ACCOUNT_NAME_KEY, "acc")
financial_importer = ImportReconciler(FinancialRecord, FINANCIAL_ENTRY_KEY, "fin")
ticket_importer = ImportReconciler(TicketRecord, TICKET_EXTERNAL_ID_KEY, "tick")


def merge(
    existing: Optional[Iterable[Any]],
    incoming: Optional[Iterable[Any]],
    match_key: MatchKey,
    model_cls: Type[BaseModel] = Account,
    id_prefix: str = "acc",
) -> ImportResult:
    """Merge `incoming` into `existing` using `match_key` as the natural key."""
    return ImportReconciler(model_cls, match_key, id_prefix).merge(existing, incoming)


def _with_parse_report(result: ImportResult, batch: ParsedBatch) -> ImportResult:
    return result.model_copy(
        update={
            "skipped_count": result.skipped_count + batch.skipped,
            "errors": tuple(batch.errors) + result.errors,
        }
    )


def import_accounts(existing_accounts: Optional[Iterable[Any]], csv_text: str) -> ImportResult:
    """Upsert accounts from an `id,name,cnpj,segment` CSV."""
    batch = parse_account_csv(csv_text)
    return _with_parse_report(account_importer.merge(existing_accounts, batch.records), batch)


def import_financials(
    existing_records: Optional[Iterable[Any]], text: str, accounts: Optional[Iterable[Any]]
) -> ImportResult:
    """Upsert ledger entries; a repeated (account, product, date) replaces the old amount."""
    batch = parse_financial_rows(text, accounts)
    return _with_parse_report(financial_importer.merge(existing_records, batch.records), batch)


def import_tickets(
    existing_tickets: Optional[Iterable[Any]],
    text: str,
    accounts: Optional[Iterable[Any]],
    now: Optional[datetime] = None,
) -> ImportResult:
    """Upsert tickets matched on their helpdesk external id."""
    batch = parse_ticket_rows(text, accounts, now=now)
    return _with_parse_report(ticket_importer.merge(existing_tickets, batch.records), batch)
