"""REST repository for the CRM backend."""

from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

from models.account import Account, AccountSegment, Activity
from models.common import coerce_records
from models.engagement import Meeting, Opportunity, SuccessPlan
from utils.http_client import ResilientClient

ModelT = TypeVar("ModelT", bound=BaseModel)


def _payload(record: BaseModel) -> Dict[str, Any]:
    return record.model_dump(by_alias=True, mode="json")


class CrmApiRepository:
    """Typed helpers over the collaborator endpoints; every call goes through ResilientClient."""

    def __init__(self, client: ResilientClient):
        self.client = client

    def _list(self, path: str, model_cls: Type[ModelT]) -> List[ModelT]:
        data = self.client.request_json(path)
        return coerce_records(model_cls, data if isinstance(data, list) else [])

    def _save(self, path: str, method: str, record: BaseModel, model_cls: Type[ModelT]) -> ModelT:
        data = self.client.request_json(path, method, json_body=_payload(record))
        return model_cls.model_validate(data)

    # Reads
    def list_accounts(self) -> List[Account]:
        return self._list("/api/accounts", Account)

    def list_meetings(self) -> List[Meeting]:
        return self._list("/api/meetings", Meeting)

    def list_opportunities(self) -> List[Opportunity]:
        return self._list("/api/opportunities", Opportunity)

    def list_success_plans(self) -> List[SuccessPlan]:
        return self._list("/api/success-plans", SuccessPlan)

    def list_segments(self) -> List[AccountSegment]:
        return self._list("/api/segments", AccountSegment)

    def health(self) -> Dict[str, Any]:
        """Backend liveness: {"status", "database"}."""
        data = self.client.request_json("/api/health")
        return data if isinstance(data, dict) else {"status": "unknown"}

    # Accounts
    def create_account(self, account: Account) -> Account:
        return self._save("/api/accounts", "POST", account, Account)

    def update_account(self, account: Account) -> Account:
        return self._save(f"/api/accounts/{account.id}", "PUT", account, Account)

    def delete_account(self, account_id: str) -> None:
        self.client.request(f"/api/accounts/{account_id}", "DELETE")

    # Activities
    def add_activity(self, activity: Activity) -> Activity:
        return self._save(
            f"/api/accounts/{activity.account_id}/activities", "POST", activity, Activity
        )

    def update_activity(self, activity: Activity) -> Activity:
        return self._save(f"/api/activities/{activity.id}", "PUT", activity, Activity)

    # Meetings and success plans: POST when new, PUT when the record has an id
    def save_meeting(self, meeting: Meeting, is_new: Optional[bool] = None) -> Meeting:
        if is_new is None:
            is_new = not meeting.id
        path = "/api/meetings" if is_new else f"/api/meetings/{meeting.id}"
        return self._save(path, "POST" if is_new else "PUT", meeting, Meeting)

    def save_success_plan(self, plan: SuccessPlan, is_new: Optional[bool] = None) -> SuccessPlan:
        if is_new is None:
            is_new = not plan.id
        path = "/api/success-plans" if is_new else f"/api/success-plans/{plan.id}"
        return self._save(path, "POST" if is_new else "PUT", plan, SuccessPlan)
