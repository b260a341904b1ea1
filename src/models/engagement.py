"""Meetings, success plans and opportunities."""

from __future__ import annotations

from typing import Annotated, List

from pydantic import Field

from models.common import Count, CrmModel, Number, OptionalNumber, Text, TextList, as_records


class Meeting(CrmModel):
    """
    Customer meeting (QBR, MBR, cadence).

    The mrr*_at_time fields are a financial snapshot captured when the meeting
    is created; see services.snapshot_service for the freeze rule.
    """

    id: Text = None
    account_id: Text = None
    account_name: Text = None
    product_id: Text = None
    product_name: Text = None
    date: Text = None
    type: Text = None
    summary: Text = None
    participants: TextList = Field(default_factory=list)
    risks: TextList = Field(default_factory=list)
    next_actions: TextList = Field(default_factory=list)
    voc_tags: TextList = Field(default_factory=list)
    voc_detailed: Text = None
    voc_type: Text = None
    voc_urgency: Text = None
    voc_status: Text = None
    mrr_at_time: OptionalNumber = None
    mrr_objective_at_time: OptionalNumber = None
    mrr_gap_at_time: OptionalNumber = None
    actions_count: Count = 0
    reminder_days: Count = 0


class Milestone(CrmModel):
    id: Text = None
    title: Text = None
    status: Text = None
    due_date: Text = None
    responsible: Text = None
    kpi: Text = None


class SuccessPlan(CrmModel):
    """Account-level plan with dated milestones."""

    id: Text = None
    account_id: Text = None
    level: Text = None
    objective: Text = None
    status: Text = None
    progress: Number = 0.0
    created_at: Text = None
    milestones: Annotated[List[Milestone], as_records] = Field(default_factory=list)


class Opportunity(CrmModel):
    """Cross-sell / upsell opportunity tracked in the CRM."""

    id: Text = None
    account_id: Text = None
    account_name: Text = None
    product_id: Text = None
    title: Text = None
    type: Text = None
    value: Number = 0.0
    probability: Number = 0.0
    crm_status: Text = None
