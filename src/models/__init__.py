"""Pydantic models for CRM records and derived views."""

from models.account import (  # noqa: F401
    Account,
    AccountSegment,
    Activity,
    ActivityStatus,
    Product,
    ScoreHistoryEntry,
)
from models.derived import (  # noqa: F401
    ImportResult,
    Notification,
    NotificationType,
    ReconciliationResult,
    TimelineEvent,
    TimelineEventType,
)
from models.engagement import Meeting, Milestone, Opportunity, SuccessPlan  # noqa: F401
from models.ledger import (  # noqa: F401
    FinancialRecord,
    MovementType,
    TicketPriority,
    TicketRecord,
    TicketStatus,
)
from models.response import ApiResponse  # noqa: F401
