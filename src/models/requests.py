"""Request bodies accepted by the derivation handlers."""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, List, Optional

from pydantic import Field

from models.common import CrmModel, TextList, as_list

RawRecords = Annotated[List[Any], as_list]


class TimelineRequest(CrmModel):
    meetings: RawRecords = Field(default_factory=list)
    activities: RawRecords = Field(default_factory=list)
    products: RawRecords = Field(default_factory=list)
    success_plan: Optional[Any] = None
    # None shows every event type
    filters: Optional[TextList] = None
    today: Optional[date] = None


class NotificationsRequest(CrmModel):
    tickets: RawRecords = Field(default_factory=list)
    financial_records: RawRecords = Field(default_factory=list)
    meetings: RawRecords = Field(default_factory=list)
    accounts: RawRecords = Field(default_factory=list)
    now: Optional[datetime] = None
    include_activity_alerts: Optional[bool] = None


class ReconcileRequest(CrmModel):
    accounts: RawRecords = Field(default_factory=list)
    financial_records: RawRecords = Field(default_factory=list)
    ticket_records: RawRecords = Field(default_factory=list)


class ImportRequest(CrmModel):
    """Existing collections plus the raw batch (`csv` for accounts, `text` otherwise)."""

    accounts: RawRecords = Field(default_factory=list)
    financial_records: RawRecords = Field(default_factory=list)
    ticket_records: RawRecords = Field(default_factory=list)
    csv: Optional[str] = None
    text: Optional[str] = None
    now: Optional[datetime] = None
