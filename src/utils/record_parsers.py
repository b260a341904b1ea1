"""
Parsers for the bulk import text formats.

Financial and ticket batches arrive as semicolon-delimited lines pasted into
the dashboards; accounts come as a CSV file with a header row. Parsers never
abort on a bad row: they return what they could read plus per-row errors.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Generic, List, Optional, TypeVar

from models.account import Account, Product
from models.common import coerce_records
from models.ledger import (
    FinancialRecord,
    MovementType,
    TicketPriority,
    TicketRecord,
    TicketStatus,
)

from utils.validators import ensure_present, require_columns

RecordT = TypeVar("RecordT")

FINANCIAL_MIN_COLUMNS = 4
TICKET_MIN_COLUMNS = 7
ACCOUNT_CSV_COLUMNS = ("id", "name", "cnpj", "segment")
ACCOUNT_CSV_REQUIRED = ("name",)
DEFAULT_TICKET_TYPE = "Issue"
DEFAULT_TICKET_SUBJECT = "No subject"

_MOVEMENT_TYPES = {movement.value.lower(): movement.value for movement in MovementType}


@dataclass
class ParsedBatch(Generic[RecordT]):
    """Rows that parsed cleanly plus a tally of what was dropped."""

    records: List[RecordT] = field(default_factory=list)
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


def _lines(text: Optional[str]) -> List[str]:
    return [line for line in (text or "").splitlines() if line.strip()]


def _amount(raw: str) -> float:
    try:
        return float(raw.strip())
    except ValueError:
        return 0.0


def _index_by_name(accounts: List[Account]) -> Dict[str, Account]:
    index: Dict[str, Account] = {}
    for account in accounts:
        key = (account.name or "").strip().lower()
        if key and key not in index:
            index[key] = account
    return index


def _find_product(account: Account, name: str) -> Optional[Product]:
    wanted = name.strip().lower()
    for product in account.products:
        if (product.name or "").strip().lower() == wanted:
            return product
    return None


def parse_financial_rows(text: Optional[str], accounts) -> ParsedBatch[FinancialRecord]:
    """
    Parse `AccountName;ProductName;YYYY-MM-DD;Amount[;MovementType]` lines.

    Rows naming an unknown account or product are skipped silently; a
    non-numeric amount reads as 0.
    """
    by_name = _index_by_name(coerce_records(Account, accounts))
    batch: ParsedBatch[FinancialRecord] = ParsedBatch()
    for number, line in enumerate(_lines(text), start=1):
        cols = [col.strip() for col in line.split(";")]
        if len(cols) < FINANCIAL_MIN_COLUMNS:
            batch.skipped += 1
            batch.errors.append(f"line {number}: expected {FINANCIAL_MIN_COLUMNS} columns")
            continue

        account = by_name.get(cols[0].lower())
        product = _find_product(account, cols[1]) if account else None
        if account is None or product is None:
            batch.skipped += 1
            continue

        movement = MovementType.RECURRING.value
        if len(cols) > FINANCIAL_MIN_COLUMNS and cols[4]:
            movement = _MOVEMENT_TYPES.get(cols[4].lower(), movement)

        batch.records.append(
            FinancialRecord(
                account_id=account.id,
                product_id=product.id,
                date=cols[2],
                amount=_amount(cols[3]),
                movement_type=movement,
            )
        )
    return batch


def parse_ticket_rows(
    text: Optional[str], accounts, now: Optional[datetime] = None
) -> ParsedBatch[TicketRecord]:
    """
    Parse `ExternalId;AccountName;Subject;Type;Status;Priority;OpenedAt;ClosedAt` lines.

    ClosedAt may be missing or empty. Rows for unknown accounts are skipped.
    """
    by_name = _index_by_name(coerce_records(Account, accounts))
    opened_default = (now or datetime.now(timezone.utc)).isoformat()
    batch: ParsedBatch[TicketRecord] = ParsedBatch()
    for number, line in enumerate(_lines(text), start=1):
        cols = [col.strip() for col in line.split(";")]
        if len(cols) < TICKET_MIN_COLUMNS:
            batch.skipped += 1
            batch.errors.append(f"line {number}: expected at least {TICKET_MIN_COLUMNS} columns")
            continue

        account = by_name.get(cols[1].lower())
        if account is None:
            batch.skipped += 1
            continue

        closed_at = cols[7] if len(cols) > 7 and cols[7] else None
        batch.records.append(
            TicketRecord(
                external_id=cols[0],
                account_id=account.id,
                subject=cols[2] or DEFAULT_TICKET_SUBJECT,
                type=cols[3] or DEFAULT_TICKET_TYPE,
                status=cols[4] or TicketStatus.OPEN.value,
                priority=cols[5] or TicketPriority.MEDIUM.value,
                opened_at=cols[6] or opened_default,
                closed_at=closed_at,
            )
        )
    return batch


def parse_account_csv(text: Optional[str]) -> ParsedBatch[Account]:
    """
    Parse an account CSV with an `id,name,cnpj,segment` header.

    Only columns present in the file are set on the records, so merging never
    blanks products or activities the CRM already holds.
    """
    reader = csv.DictReader(io.StringIO(text or ""))
    header = [name.strip() for name in (reader.fieldnames or [])]
    require_columns(header, ACCOUNT_CSV_REQUIRED, "Account CSV")

    batch: ParsedBatch[Account] = ParsedBatch()
    for number, row in enumerate(reader, start=2):
        values = {
            (key or "").strip(): (value or "").strip()
            for key, value in row.items()
            if (key or "").strip() in ACCOUNT_CSV_COLUMNS
        }
        if not any(values.values()):
            continue
        try:
            ensure_present(values.get("name"), "name")
        except ValueError as exc:
            batch.skipped += 1
            batch.errors.append(f"row {number}: {exc}")
            continue

        payload = {key: value for key, value in values.items() if value}
        batch.records.append(Account.model_validate(payload))
    return batch
