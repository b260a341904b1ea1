"""
DerivationPipeline and meeting snapshot tests.

Run with: pytest tests/unit/test_derivation_pipeline.py -v
"""

import sys
from datetime import date, datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path to simulate Lambda environment
SRC_PATH = Path(__file__).parent.parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

NOW = datetime(2024, 5, 20, 9, 0, tzinfo=timezone.utc)


def _pipeline(**kwargs):
    from services.derivation_pipeline import DerivationPipeline

    return DerivationPipeline(clock=lambda: NOW, **kwargs)


def _accounts():
    return [{"id": "a1", "name": "Acme", "products": [{"id": "p1", "mrr": 100}]}]


class TestApply:
    """Observe, diff, recompute, publish."""

    def test_ledger_change_reconciles_accounts(self):
        pipeline = _pipeline()
        pipeline.apply(accounts=_accounts())
        state = pipeline.apply(
            financial_records=[
                {"accountId": "a1", "productId": "p1", "date": "2024-01-01", "amount": 100},
                {"accountId": "a1", "productId": "p1", "date": "2024-02-01", "amount": 250},
            ]
        )

        assert state.snapshot.accounts[0].products[0].mrr == 250
        assert state.reconciliation.changed_account_ids == ("a1",)

    def test_unrelated_change_does_not_reconcile(self):
        from services.reconciliation_service import FinancialReconciler

        reconciler = MagicMock(spec=FinancialReconciler)
        reconciler.reconcile.side_effect = FinancialReconciler().reconcile
        pipeline = _pipeline(reconciler=reconciler)

        pipeline.apply(accounts=_accounts())
        assert reconciler.reconcile.call_count == 1

        pipeline.apply(meetings=[{"id": "m1", "date": "2024-05-21"}])
        pipeline.apply(accounts=[{"id": "a1", "name": "Renamed", "products": []}])
        assert reconciler.reconcile.call_count == 1

        pipeline.apply(accounts=_accounts() + [{"id": "a2"}])
        assert reconciler.reconcile.call_count == 2

    def test_notifications_recomputed_on_source_change(self):
        pipeline = _pipeline()
        state = pipeline.apply(
            accounts=_accounts(),
            ticket_records=[
                {"id": "t1", "accountId": "a1", "priority": "Critical", "openedAt": "2024-05-19"}
            ],
        )

        assert [item.id for item in state.notifications] == ["notif-tick-t1"]
        # Reconciliation put the open critical ticket on products[0]
        assert state.snapshot.accounts[0].products[0].critical_tickets == 1

        state = pipeline.apply(opportunities=[{"id": "o1"}])
        assert [item.id for item in state.notifications] == ["notif-tick-t1"]

    def test_subscribers_see_complete_state(self):
        pipeline = _pipeline()
        seen = []
        unsubscribe = pipeline.subscribe(
            lambda state: seen.append((state.version, state.snapshot.accounts[0].products[0].mrr))
        )

        pipeline.apply(
            accounts=_accounts(),
            financial_records=[{"accountId": "a1", "productId": "p1", "date": "2024-01-01", "amount": 7}],
        )
        unsubscribe()
        pipeline.apply(meetings=[])

        assert seen == [(1, 7.0)]
        assert pipeline.state.version == 2

    def test_previous_state_is_untouched(self):
        pipeline = _pipeline()
        before = pipeline.apply(accounts=_accounts())
        pipeline.apply(financial_records=[{"accountId": "a1", "productId": "p1", "date": "2024-01-01", "amount": 9}])

        assert before.snapshot.accounts[0].products[0].mrr == 100
        assert isinstance(before.snapshot.accounts, tuple)

    def test_unloaded_ticket_ledger_keeps_cached_counters(self):
        pipeline = _pipeline()
        accounts = [{"id": "a1", "products": [{"id": "p1", "mrr": 100, "openTickets": 4, "criticalTickets": 2}]}]

        state = pipeline.apply(accounts=accounts)
        assert state.reconciliation.changed_account_ids == ()

        state = pipeline.apply(
            financial_records=[{"accountId": "a1", "productId": "p1", "date": "2024-01-01", "amount": 300}]
        )
        product = state.snapshot.accounts[0].products[0]
        assert (product.mrr, product.open_tickets, product.critical_tickets) == (300, 4, 2)

        state = pipeline.apply(ticket_records=[])
        product = state.snapshot.accounts[0].products[0]
        assert (product.open_tickets, product.critical_tickets) == (0, 0)

    def test_unknown_collection_is_rejected(self):
        pipeline = _pipeline()
        with pytest.raises(ValueError):
            pipeline.apply(playbooks=[])


class TestTimelineFor:
    """Per-account timeline from the current snapshot."""

    def test_collects_account_sources(self):
        pipeline = _pipeline()
        pipeline.apply(
            accounts=[
                {
                    "id": "a1",
                    "successPlanId": "sp1",
                    "activities": [{"id": "x1", "title": "Kickoff", "dueDate": "2024-02-01"}],
                    "products": [{"id": "p1", "dataInicioSetup": "2024-01-01"}],
                }
            ],
            meetings=[
                {"id": "m1", "accountId": "a1", "date": "2024-03-01"},
                {"id": "m2", "accountId": "other", "date": "2024-03-02"},
            ],
            success_plans=[{"id": "sp1", "createdAt": "2023-12-01"}],
        )

        events = pipeline.timeline_for("a1", today=date(2024, 6, 1))
        assert [event.id for event in events] == ["meet-m1", "act-x1", "prod-setup-p1", "sp-start-sp1"]

    def test_unknown_account(self):
        from utils.error_handling import NotFoundError

        with pytest.raises(NotFoundError):
            _pipeline().timeline_for("nope")


class TestMeetingSnapshot:
    """Financial snapshot stamped on meetings."""

    def test_fresh_snapshot(self):
        from models.account import Product
        from models.engagement import Meeting
        from services.snapshot_service import capture_meeting_snapshot

        product = Product(id="p1", name="CRM", mrr=800, mrr_objective=1000)
        meeting = capture_meeting_snapshot(Meeting(id="m1"), product)

        assert (meeting.mrr_at_time, meeting.mrr_objective_at_time, meeting.mrr_gap_at_time) == (
            800,
            1000,
            -200,
        )
        assert meeting.product_name == "CRM"

    def test_same_product_keeps_frozen_values(self):
        from models.account import Product
        from models.engagement import Meeting
        from services.snapshot_service import capture_meeting_snapshot

        previous = Meeting(id="m1", product_id="p1", mrr_at_time=500, mrr_objective_at_time=600, mrr_gap_at_time=-100)
        product = Product(id="p1", mrr=900, mrr_objective=600)
        meeting = capture_meeting_snapshot(Meeting(id="m1", summary="edited"), product, previous=previous)

        assert meeting.mrr_at_time == 500
        assert meeting.mrr_gap_at_time == -100
        assert meeting.summary == "edited"

    def test_new_product_recaptures(self):
        from models.account import Product
        from models.engagement import Meeting
        from services.snapshot_service import capture_meeting_snapshot

        previous = Meeting(id="m1", product_id="p1", mrr_at_time=500)
        product = Product(id="p2", mrr=900)
        meeting = capture_meeting_snapshot(Meeting(id="m1"), product, previous=previous)

        assert meeting.mrr_at_time == 900
        assert meeting.product_id == "p2"

    def test_no_product(self):
        from models.engagement import Meeting
        from services.snapshot_service import capture_meeting_snapshot

        meeting = capture_meeting_snapshot(Meeting(id="m1"), None)
        assert meeting.mrr_at_time == 0
        assert meeting.product_name == "General"
