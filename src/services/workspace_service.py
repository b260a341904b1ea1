"""
CRM workspace orchestration.

Loads the backend collections into the derivation pipeline, routes imports
through the import reconciler, records meetings with their financial
snapshot, and writes reconciled account snapshots back upstream.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional, Set

from models.account import Account
from models.derived import ImportResult
from models.engagement import Meeting
from repositories.crm_api_repo import CrmApiRepository
from services import import_service
from services.auth_session import SessionProvider
from services.derivation_pipeline import DerivationPipeline, DerivedState
from services.snapshot_service import capture_meeting_snapshot
from utils.error_handling import AuthError, NotFoundError
from utils.logging_config import get_logger

logger = get_logger(__name__)


class CrmWorkspace:
    """One user's working copy of the CRM."""

    def __init__(
        self,
        repository: CrmApiRepository,
        pipeline: Optional[DerivationPipeline] = None,
        session: Optional[SessionProvider] = None,
        on_logout: Optional[Callable[[], None]] = None,
    ):
        self.repository = repository
        self.pipeline = pipeline or DerivationPipeline()
        self.session = session
        self.on_logout = on_logout
        self._pending_sync: Set[str] = set()
        self._last_reconciliation = self.pipeline.state.reconciliation
        self.pipeline.subscribe(self._track_reconciliation)

    @property
    def state(self) -> DerivedState:
        return self.pipeline.state

    @property
    def pending_sync(self) -> Set[str]:
        return set(self._pending_sync)

    def load(self) -> DerivedState:
        """Fetch every backend collection and publish them as one change."""
        try:
            collections = dict(
                accounts=self.repository.list_accounts(),
                meetings=self.repository.list_meetings(),
                opportunities=self.repository.list_opportunities(),
                success_plans=self.repository.list_success_plans(),
                segments=self.repository.list_segments(),
            )
        except AuthError:
            logger.warning("Backend rejected the session; signing out")
            self._force_logout()
            raise
        return self.pipeline.apply(**collections)

    def import_accounts(self, csv_text: str) -> ImportResult:
        result = import_service.import_accounts(self.state.snapshot.accounts, csv_text)
        self.pipeline.apply(accounts=result.merged)
        return result

    def import_financials(self, text: str) -> ImportResult:
        snapshot = self.state.snapshot
        result = import_service.import_financials(
            snapshot.financial_records, text, snapshot.accounts
        )
        self.pipeline.apply(financial_records=result.merged)
        return result

    def import_tickets(self, text: str, now: Optional[datetime] = None) -> ImportResult:
        snapshot = self.state.snapshot
        result = import_service.import_tickets(snapshot.ticket_records, text, snapshot.accounts, now=now)
        self.pipeline.apply(ticket_records=result.merged)
        return result

    def record_meeting(self, meeting: Meeting) -> Meeting:
        """Stamp the product snapshot on a meeting, save it and publish it."""
        snapshot = self.state.snapshot
        account = next((item for item in snapshot.accounts if item.id == meeting.account_id), None)
        if account is None:
            raise NotFoundError(f"Account {meeting.account_id} not found")

        product = next(
            (item for item in account.products if meeting.product_id and item.id == meeting.product_id),
            None,
        )
        previous = next(
            (item for item in snapshot.meetings if meeting.id and item.id == meeting.id), None
        )
        prepared = capture_meeting_snapshot(meeting, product, previous=previous)
        if not prepared.account_name:
            prepared = prepared.model_copy(update={"account_name": account.name})

        saved = self._call(self.repository.save_meeting, prepared, previous is None)
        meetings = [item for item in snapshot.meetings if item.id != saved.id]
        meetings.append(saved)
        self.pipeline.apply(meetings=meetings)
        return saved

    def sync_reconciled_accounts(self) -> List[Account]:
        """PUT every account whose snapshot changed since the last sync."""
        if not self._pending_sync:
            return []

        saved_accounts: List[Account] = []
        for account in self.state.snapshot.accounts:
            if account.id not in self._pending_sync:
                continue
            saved_accounts.append(self._call(self.repository.update_account, account))
            self._pending_sync.discard(account.id)

        # Drop ids of accounts that no longer exist
        self._pending_sync.clear()

        by_id = {account.id: account for account in saved_accounts}
        merged = [by_id.get(account.id, account) for account in self.state.snapshot.accounts]
        self.pipeline.apply(accounts=merged)
        logger.info("Reconciled accounts synced", extra={"accounts": len(saved_accounts)})
        return saved_accounts

    def _call(self, func: Callable, *args):
        try:
            return func(*args)
        except AuthError:
            self._force_logout()
            raise

    def _force_logout(self) -> None:
        if self.on_logout is not None:
            self.on_logout()
        if self.session is not None:
            self.session.sign_out()

    def _track_reconciliation(self, state: DerivedState) -> None:
        result = state.reconciliation
        if result is None or result is self._last_reconciliation:
            return
        self._last_reconciliation = result
        self._pending_sync.update(account_id for account_id in result.changed_account_ids if account_id)
