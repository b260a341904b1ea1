"""
CrmWorkspace orchestration and CrmApiRepository tests.

Run with: pytest tests/unit/test_workspace_service.py -v
"""

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

# Add src to path to simulate Lambda environment
SRC_PATH = Path(__file__).parent.parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


def _repository():
    from models.account import Account
    from repositories.crm_api_repo import CrmApiRepository

    repository = MagicMock(spec=CrmApiRepository)
    repository.list_accounts.return_value = [
        Account.model_validate({"id": "a1", "name": "Acme", "products": [{"id": "p1", "name": "CRM", "mrr": 100}]})
    ]
    repository.list_meetings.return_value = []
    repository.list_opportunities.return_value = []
    repository.list_success_plans.return_value = []
    repository.list_segments.return_value = []
    repository.update_account.side_effect = lambda account: account
    repository.save_meeting.side_effect = lambda meeting, is_new: meeting
    return repository


class TestLoad:
    """Initial load and forced logout."""

    def test_load_publishes_collections(self):
        from services.workspace_service import CrmWorkspace

        workspace = CrmWorkspace(_repository())
        state = workspace.load()

        assert [account.name for account in state.snapshot.accounts] == ["Acme"]
        assert state.version == 1

    def test_auth_failure_forces_logout(self):
        from services.workspace_service import CrmWorkspace
        from utils.error_handling import AuthError

        repository = _repository()
        repository.list_meetings.side_effect = AuthError("Session expired")
        session = MagicMock()
        on_logout = MagicMock()

        workspace = CrmWorkspace(repository, session=session, on_logout=on_logout)
        with pytest.raises(AuthError):
            workspace.load()

        on_logout.assert_called_once()
        session.sign_out.assert_called_once()
        assert workspace.state.version == 0

    def test_other_failures_keep_session(self):
        from services.workspace_service import CrmWorkspace
        from utils.error_handling import InternalServerError

        repository = _repository()
        repository.list_accounts.side_effect = InternalServerError("boom")
        session = MagicMock()

        with pytest.raises(InternalServerError):
            CrmWorkspace(repository, session=session).load()
        session.sign_out.assert_not_called()


class TestImportsAndSync:
    """Imports flow through the pipeline; reconciled accounts go upstream."""

    def test_financial_import_reconciles_and_syncs(self):
        from services.workspace_service import CrmWorkspace

        repository = _repository()
        workspace = CrmWorkspace(repository)
        workspace.load()

        result = workspace.import_financials("Acme;CRM;2024-02-01;250")

        assert result.created_count == 1
        assert workspace.state.snapshot.accounts[0].products[0].mrr == 250
        assert workspace.pending_sync == {"a1"}

        synced = workspace.sync_reconciled_accounts()
        assert [account.id for account in synced] == ["a1"]
        repository.update_account.assert_called_once()
        assert workspace.pending_sync == set()
        assert workspace.sync_reconciled_accounts() == []

    def test_load_then_sync_writes_nothing(self):
        from models.account import Account
        from services.workspace_service import CrmWorkspace

        repository = _repository()
        repository.list_accounts.return_value = [
            Account.model_validate(
                {"id": "a1", "name": "Acme", "products": [{"id": "p1", "openTickets": 4, "criticalTickets": 2}]}
            )
        ]
        workspace = CrmWorkspace(repository)
        workspace.load()

        assert workspace.pending_sync == set()
        assert workspace.sync_reconciled_accounts() == []
        repository.update_account.assert_not_called()
        product = workspace.state.snapshot.accounts[0].products[0]
        assert (product.open_tickets, product.critical_tickets) == (4, 2)

    def test_ticket_import_updates_counts(self):
        from services.workspace_service import CrmWorkspace

        workspace = CrmWorkspace(_repository())
        workspace.load()
        workspace.import_tickets("Z-1;Acme;Outage;Issue;Open;Critical;2024-05-01")

        product = workspace.state.snapshot.accounts[0].products[0]
        assert (product.open_tickets, product.critical_tickets) == (1, 1)
        assert [item.link_to for item in workspace.state.notifications] == ["tickets"]

    def test_account_import_adds_accounts(self):
        from services.workspace_service import CrmWorkspace

        workspace = CrmWorkspace(_repository())
        workspace.load()
        result = workspace.import_accounts("name,segment\nacme,SMB\nGlobex,Enterprise\n")

        names = [account.name for account in workspace.state.snapshot.accounts]
        assert names == ["acme", "Globex"]
        assert workspace.state.snapshot.accounts[0].products[0].id == "p1"
        assert (result.created_count, result.updated_count) == (1, 1)


class TestRecordMeeting:
    def test_meeting_gets_snapshot_and_is_published(self):
        from models.engagement import Meeting
        from services.workspace_service import CrmWorkspace

        repository = _repository()
        workspace = CrmWorkspace(repository)
        workspace.load()

        saved = workspace.record_meeting(Meeting(id="m1", account_id="a1", product_id="p1", date="2024-05-01"))

        assert saved.mrr_at_time == 100
        assert saved.account_name == "Acme"
        repository.save_meeting.assert_called_once()
        assert repository.save_meeting.call_args.args[1] is True
        assert [meeting.id for meeting in workspace.state.snapshot.meetings] == ["m1"]

    def test_unknown_account(self):
        from models.engagement import Meeting
        from services.workspace_service import CrmWorkspace
        from utils.error_handling import NotFoundError

        workspace = CrmWorkspace(_repository())
        with pytest.raises(NotFoundError):
            workspace.record_meeting(Meeting(id="m1", account_id="zz"))


class TestCrmApiRepository:
    """Endpoints and payload shapes over a mocked transport."""

    def _repo(self, handler):
        from repositories.crm_api_repo import CrmApiRepository
        from utils.http_client import ResilientClient

        client = ResilientClient(
            base_url="http://crm.test", transport=httpx.MockTransport(handler), sleep=lambda _: None
        )
        return CrmApiRepository(client)

    def test_list_accounts(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json=[{"id": "a1", "name": "Acme", "products": None}, "junk"])

        accounts = self._repo(handler).list_accounts()

        assert seen == [("GET", "/api/accounts")]
        assert [account.id for account in accounts] == ["a1"]
        assert accounts[0].products == []

    def test_update_account_sends_camel_case(self):
        from models.account import Account, Product

        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=seen["body"])

        account = Account(id="a1", name="Acme", products=[Product(id="p1", mrr_objective=10)])
        saved = self._repo(handler).update_account(account)

        assert (seen["method"], seen["path"]) == ("PUT", "/api/accounts/a1")
        assert seen["body"]["products"][0]["mrrObjetivo"] == 10
        assert "successPlanId" in seen["body"]
        assert saved.products[0].mrr_objective == 10

    @pytest.mark.parametrize(
        "plan_id, expected",
        [(None, ("POST", "/api/success-plans")), ("sp1", ("PUT", "/api/success-plans/sp1"))],
    )
    def test_save_success_plan_route(self, plan_id, expected):
        from models.engagement import SuccessPlan

        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json={"id": "sp1"})

        self._repo(handler).save_success_plan(SuccessPlan(id=plan_id))
        assert seen == [expected]

    def test_add_activity_route(self):
        from models.account import Activity

        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(201, json={"id": "x1", "accountId": "a1"})

        activity = self._repo(handler).add_activity(Activity(account_id="a1", title="Call"))
        assert seen == [("POST", "/api/accounts/a1/activities")]
        assert activity.id == "x1"

    def test_health(self):
        repo = self._repo(lambda request: httpx.Response(200, json={"status": "ok", "database": "mock"}))
        assert repo.health() == {"status": "ok", "database": "mock"}
