"""
Recompute-on-change scheduler for the derived CRM views.

Source collections live in an immutable snapshot. Applying a change builds the
next snapshot, reconciles ledgers into account snapshots when the ledgers (or
the number of accounts) changed, recomputes the notification feed, then swaps
the state reference and notifies subscribers. Readers only ever see a fully
built state.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Type

from pydantic import BaseModel

from models.account import Account, AccountSegment
from models.common import coerce_records
from models.derived import Notification, ReconciliationResult, TimelineEvent
from models.engagement import Meeting, Opportunity, SuccessPlan
from models.ledger import FinancialRecord, TicketRecord
from services.notification_service import compute_notifications
from services.reconciliation_service import FinancialReconciler
from services.timeline_service import aggregate
from utils.error_handling import NotFoundError
from utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CrmSnapshot:
    """Every source collection at one point in time."""

    accounts: Tuple[Account, ...] = ()
    meetings: Tuple[Meeting, ...] = ()
    financial_records: Tuple[FinancialRecord, ...] = ()
    ticket_records: Tuple[TicketRecord, ...] = ()
    success_plans: Tuple[SuccessPlan, ...] = ()
    opportunities: Tuple[Opportunity, ...] = ()
    segments: Tuple[AccountSegment, ...] = ()


COLLECTION_MODELS: Dict[str, Type[BaseModel]] = {
    "accounts": Account,
    "meetings": Meeting,
    "financial_records": FinancialRecord,
    "ticket_records": TicketRecord,
    "success_plans": SuccessPlan,
    "opportunities": Opportunity,
    "segments": AccountSegment,
}

# Collections whose change invalidates the notification feed.
NOTIFICATION_SOURCES = frozenset({"accounts", "meetings", "financial_records", "ticket_records"})

LEDGER_COLLECTIONS = frozenset({"financial_records", "ticket_records"})


@dataclass(frozen=True)
class DerivedState:
    snapshot: CrmSnapshot
    notifications: Tuple[Notification, ...] = ()
    reconciliation: Optional[ReconciliationResult] = None
    version: int = 0


Subscriber = Callable[[DerivedState], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DerivationPipeline:
    """Observe, diff, recompute, publish."""

    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        include_activity_alerts: bool = False,
        reconciler: Optional[FinancialReconciler] = None,
    ):
        self._clock = clock
        self._include_activity_alerts = include_activity_alerts
        self._reconciler = reconciler or FinancialReconciler()
        self._state = DerivedState(snapshot=CrmSnapshot())
        self._subscribers: List[Subscriber] = []
        # Ledgers received at least once; an unloaded ledger must not zero cached counters
        self._loaded_ledgers: Set[str] = set()

    @property
    def state(self) -> DerivedState:
        return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for every published state; returns an unsubscribe."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def apply(self, **collections: Optional[Iterable[Any]]) -> DerivedState:
        """
        Replace one or more source collections and publish the new state.

        Keyword names are the CrmSnapshot fields; each value replaces that
        collection wholesale.
        """
        unknown = set(collections) - set(COLLECTION_MODELS)
        if unknown:
            raise ValueError(f"Unknown collections: {', '.join(sorted(unknown))}")

        current = self._state
        previous = current.snapshot
        replaced = {
            name: tuple(coerce_records(COLLECTION_MODELS[name], items))
            for name, items in collections.items()
        }
        snapshot = dataclasses.replace(previous, **replaced)
        self._loaded_ledgers.update(LEDGER_COLLECTIONS & set(replaced))

        reconciliation = current.reconciliation
        if self._needs_reconcile(previous, snapshot, replaced):
            reconciliation = self._reconciler.reconcile(
                snapshot.accounts,
                self._ledger(snapshot, "financial_records"),
                self._ledger(snapshot, "ticket_records"),
            )
            if reconciliation.touched:
                snapshot = dataclasses.replace(snapshot, accounts=tuple(reconciliation.accounts))

        notifications = current.notifications
        if NOTIFICATION_SOURCES & set(replaced) or (reconciliation is not current.reconciliation):
            notifications = tuple(
                compute_notifications(
                    snapshot.ticket_records,
                    snapshot.financial_records,
                    snapshot.meetings,
                    snapshot.accounts,
                    now=self._clock(),
                    include_activity_alerts=self._include_activity_alerts,
                )
            )

        state = DerivedState(
            snapshot=snapshot,
            notifications=notifications,
            reconciliation=reconciliation,
            version=current.version + 1,
        )
        self._state = state
        logger.info(
            "Derived state published",
            extra={
                "version": state.version,
                "changed": sorted(replaced),
                "reconciled": reconciliation is not current.reconciliation,
                "notifications": len(notifications),
            },
        )
        for callback in list(self._subscribers):
            callback(state)
        return state

    def timeline_for(
        self,
        account_id: str,
        filters: Any = None,
        today: Optional[date] = None,
    ) -> List[TimelineEvent]:
        """Timeline of one account from the current snapshot."""
        snapshot = self._state.snapshot
        account = next((item for item in snapshot.accounts if item.id == account_id), None)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")

        plan = next(
            (
                item
                for item in snapshot.success_plans
                if (account.success_plan_id and item.id == account.success_plan_id)
                or item.account_id == account_id
            ),
            None,
        )
        meetings = [item for item in snapshot.meetings if item.account_id == account_id]
        return aggregate(
            meetings,
            account.activities,
            account.products,
            success_plan=plan,
            active_filters=filters,
            today=today,
        )

    def _ledger(self, snapshot: CrmSnapshot, name: str) -> Optional[Tuple[Any, ...]]:
        if name not in self._loaded_ledgers:
            return None
        return getattr(snapshot, name)

    @staticmethod
    def _needs_reconcile(
        previous: CrmSnapshot, snapshot: CrmSnapshot, replaced: Dict[str, tuple]
    ) -> bool:
        if LEDGER_COLLECTIONS & set(replaced):
            return True
        return len(previous.accounts) != len(snapshot.accounts)
