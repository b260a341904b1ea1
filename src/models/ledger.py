"""Financial and ticket ledger records."""

from __future__ import annotations

from enum import Enum

from pydantic import AliasChoices, Field

from models.common import CrmModel, Number, Text


class MovementType(str, Enum):
    """Kinds of MRR movement recorded in the financial ledger."""

    NEW = "New"
    EXPANSION = "Expansion"
    CONTRACTION = "Contraction"
    CHURN = "Churn"
    RECURRING = "Recurring"
    RESURRECTION = "Resurrection"


class TicketStatus(str, Enum):
    OPEN = "Open"
    PENDING = "Pending"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


class TicketPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class FinancialRecord(CrmModel):
    """One ledger entry for an (account, product) on a given date."""

    id: Text = None
    account_id: Text = None
    product_id: Text = None
    date: Text = None
    amount: Number = 0.0
    # Older payloads call this field "type".
    movement_type: Text = Field(
        default=MovementType.RECURRING.value,
        validation_alias=AliasChoices("movementType", "movement_type", "type"),
        serialization_alias="movementType",
    )


class TicketRecord(CrmModel):
    """Support ticket mirrored from the helpdesk (Zendesk, Jira, ...)."""

    id: Text = None
    external_id: Text = None
    account_id: Text = None
    subject: Text = None
    type: Text = None
    status: Text = TicketStatus.OPEN.value
    priority: Text = TicketPriority.MEDIUM.value
    opened_at: Text = None
    closed_at: Text = None
