"""Account, product and activity records."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, List

from pydantic import Field

from models.common import Count, CrmModel, Number, Text, as_records


class ActivityStatus(str, Enum):
    """Lifecycle of an account activity."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class ScoreHistoryEntry(CrmModel):
    """One month of a product's health score; the source carries no year."""

    month: Text = None
    score: Number = 0.0


class Product(CrmModel):
    """Product subscribed by an account, including its cached ledger snapshot."""

    id: Text = None
    name: Text = None
    description: Text = None
    mrr: Number = 0.0
    mrr_objective: Number = Field(default=0.0, alias="mrrObjetivo")
    health_score: Number = 0.0
    health_status: Text = None
    maturity: Text = None
    open_tickets: Count = 0
    critical_tickets: Count = 0
    setup_started_on: Text = Field(default=None, alias="dataInicioSetup")
    go_live_planned_on: Text = Field(default=None, alias="dataGoLivePrevisto")
    go_live_done_on: Text = Field(default=None, alias="dataGoLiveRealizado")
    score_history: Annotated[List[ScoreHistoryEntry], as_records] = Field(default_factory=list)


class Activity(CrmModel):
    """Follow-up task tracked against an account (optionally a product)."""

    id: Text = None
    account_id: Text = None
    product_id: Text = None
    title: Text = None
    category: Text = None
    status: Text = ActivityStatus.PENDING.value
    due_date: Text = None
    urgency: Text = None
    owner: Text = None
    notes: Text = None
    alert_days: Count = 0


class Account(CrmModel):
    """Customer account with its nested products and activities."""

    id: Text = None
    name: Text = None
    cnpj: Text = None
    segment: Text = None
    segment_id: Text = None
    success_plan_id: Text = None
    products: Annotated[List[Product], as_records] = Field(default_factory=list)
    activities: Annotated[List[Activity], as_records] = Field(default_factory=list)
    contacts: Annotated[List[dict], as_records] = Field(default_factory=list)


class AccountSegment(CrmModel):
    """Named account grouping managed by admins."""

    id: Text = None
    name: Text = None
    description: Text = None
