"""Computed views; rebuilt from source records on every change, never stored."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from models.account import Account
from models.common import DerivedModel


class TimelineEventType(str, Enum):
    """Event kinds shown on the account journey timeline."""

    MEETING = "MEETING"
    ACTIVITY = "ACTIVITY"
    VOC = "VOC"
    PRODUCT = "PRODUCT"
    MILESTONE = "MILESTONE"
    SUCCESS_PLAN_START = "SUCCESS_PLAN_START"
    HEALTH_SCORE = "HEALTH_SCORE"


class TimelineEvent(DerivedModel):
    id: str
    original_id: Optional[str] = None
    date: Optional[str] = None
    type: TimelineEventType
    title: str
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    subtitle: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)


class NotificationType(str, Enum):
    RISK = "Risk"
    TASK = "Task"
    OPPORTUNITY = "Opportunity"
    SYSTEM = "System"


class Notification(DerivedModel):
    """Alert feed entry; link_to names the screen the UI routes to."""

    id: str
    type: NotificationType
    title: str
    message: str
    timestamp: datetime
    read: bool = False
    link_to: str


class ReconciliationResult(DerivedModel):
    """Accounts after folding the ledgers into their product snapshots."""

    accounts: List[Account] = Field(default_factory=list)
    touched: bool = False
    changed_account_ids: Tuple[str, ...] = ()


class ImportResult(DerivedModel):
    """Outcome of merging an external batch into a canonical collection."""

    merged: List[Any] = Field(default_factory=list)
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    errors: Tuple[str, ...] = ()
