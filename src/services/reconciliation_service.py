"""
Ledger reconciliation into cached product snapshots.

Folds the financial ledger and the ticket ledger into each account's products:
the most recent financial record sets the product MRR, and the account's open
and critical ticket counts are cached on its first product. Accounts whose
snapshot does not change are returned untouched (same objects), so callers can
skip write-backs.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.account import Account, Product
from models.common import coerce_records
from models.derived import ReconciliationResult
from models.ledger import FinancialRecord, TicketPriority, TicketRecord, TicketStatus
from utils.dates import parse_timestamp
from utils.logging_config import get_logger

logger = get_logger(__name__)

# Ticket aggregates live on the account's first product; dashboards read them
# from products[0]. Whether they belong on the account itself is still open.
TICKET_AGGREGATE_PRODUCT_INDEX = 0

OPEN_TICKET_STATUSES = frozenset({TicketStatus.OPEN.value, TicketStatus.PENDING.value})

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)

SnapshotKey = Tuple[float, int, int]


def snapshot_of(product: Product) -> SnapshotKey:
    """The only fields reconciliation writes; used for change detection."""
    return (product.mrr, product.open_tickets, product.critical_tickets)


def latest_records(records: Iterable[FinancialRecord]) -> Dict[Tuple[str, str], FinancialRecord]:
    """
    Most recent record per (account, product).

    Later dates win; on equal dates the first record seen wins. Records with
    unreadable dates only win when nothing else exists for the pair.
    """
    latest: Dict[Tuple[str, str], FinancialRecord] = {}
    latest_at: Dict[Tuple[str, str], datetime] = {}
    for record in records:
        key = (record.account_id or "", record.product_id or "")
        moment = parse_timestamp(record.date) or _OLDEST
        if key not in latest or moment > latest_at[key]:
            latest[key] = record
            latest_at[key] = moment
    return latest


def ticket_counts(tickets: Iterable[TicketRecord]) -> Dict[str, Tuple[int, int]]:
    """(open, critical) counts per account; open means Open or Pending."""
    counts: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
    for ticket in tickets:
        if ticket.status not in OPEN_TICKET_STATUSES:
            continue
        bucket = counts[ticket.account_id or ""]
        bucket[0] += 1
        if ticket.priority == TicketPriority.CRITICAL.value:
            bucket[1] += 1
    return {account_id: (pair[0], pair[1]) for account_id, pair in counts.items()}


def reconcile_account(
    account: Account,
    latest: Dict[Tuple[str, str], FinancialRecord],
    counts: Optional[Dict[str, Tuple[int, int]]],
) -> Account:
    """
    Return the account with its snapshot refreshed, or the same object if unchanged.

    counts=None means the ticket ledger is not loaded; cached counters stay as-is.
    """
    changed = False
    products: List[Product] = []
    for product in account.products:
        record = latest.get((account.id or "", product.id or ""))
        if record is not None and record.amount != product.mrr:
            product = product.model_copy(update={"mrr": record.amount})
            changed = True
        products.append(product)

    if counts is not None and len(products) > TICKET_AGGREGATE_PRODUCT_INDEX:
        open_count, critical_count = counts.get(account.id or "", (0, 0))
        target = products[TICKET_AGGREGATE_PRODUCT_INDEX]
        if target.open_tickets != open_count or target.critical_tickets != critical_count:
            products[TICKET_AGGREGATE_PRODUCT_INDEX] = target.model_copy(
                update={"open_tickets": open_count, "critical_tickets": critical_count}
            )
            changed = True

    if not changed:
        return account
    return account.model_copy(update={"products": products})


class FinancialReconciler:
    """Propose refreshed account snapshots from the current ledgers."""

    def reconcile(
        self,
        accounts: Optional[Iterable[Any]],
        financial_records: Optional[Iterable[Any]],
        ticket_records: Optional[Iterable[Any]],
    ) -> ReconciliationResult:
        account_list = coerce_records(Account, accounts)
        latest = latest_records(coerce_records(FinancialRecord, financial_records))
        counts = None
        if ticket_records is not None:
            counts = ticket_counts(coerce_records(TicketRecord, ticket_records))

        reconciled: List[Account] = []
        changed_ids: List[str] = []
        for account in account_list:
            updated = reconcile_account(account, latest, counts)
            if updated is not account and _snapshots_differ(account, updated):
                changed_ids.append(account.id or "")
                reconciled.append(updated)
            else:
                reconciled.append(account)

        if changed_ids:
            logger.info(
                "Account snapshots reconciled",
                extra={"changed_accounts": len(changed_ids), "accounts": len(account_list)},
            )
        return ReconciliationResult(
            accounts=reconciled,
            touched=bool(changed_ids),
            changed_account_ids=tuple(changed_ids),
        )


def _snapshots_differ(current: Account, candidate: Account) -> bool:
    if len(current.products) != len(candidate.products):
        return True
    return any(
        snapshot_of(old) != snapshot_of(new)
        for old, new in zip(current.products, candidate.products)
    )


def reconcile(
    accounts: Optional[Iterable[Any]],
    financial_records: Optional[Iterable[Any]],
    ticket_records: Optional[Iterable[Any]],
) -> ReconciliationResult:
    """Module-level shortcut for FinancialReconciler().reconcile."""
    return FinancialReconciler().reconcile(accounts, financial_records, ticket_records)
