"""
Notification feed rules.

Each rule scans one source collection independently; the feed is the union of
all rule outputs sorted newest first. Records with unreadable dates are skipped
by the rule that needs the date, never by the whole pass.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from models.account import Account, ActivityStatus
from models.common import coerce_records
from models.derived import Notification, NotificationType
from models.engagement import Meeting
from models.ledger import FinancialRecord, MovementType, TicketPriority, TicketRecord, TicketStatus
from utils.dates import ensure_aware, parse_date, parse_timestamp, year_month
from utils.logging_config import get_logger

logger = get_logger(__name__)

UNKNOWN_ACCOUNT_NAME = "Customer"

CLOSED_TICKET_STATUSES = frozenset({TicketStatus.CLOSED.value, TicketStatus.RESOLVED.value})
RISK_MOVEMENTS = frozenset({MovementType.CHURN.value, MovementType.CONTRACTION.value})
UPCOMING_MEETING_DAYS = 1
DEFAULT_ACTIVITY_ALERT_DAYS = 1

LINK_TICKETS = "tickets"
LINK_FINANCIALS = "financials"
LINK_MEETINGS = "meetings"
LINK_ACTIVITIES = "activities"


def _account_names(accounts: List[Account]) -> Dict[str, str]:
    names: Dict[str, str] = {}
    for account in accounts:
        if account.id and account.id not in names:
            names[account.id] = account.name or UNKNOWN_ACCOUNT_NAME
    return names


def critical_ticket_alerts(
    tickets: List[TicketRecord], names: Dict[str, str]
) -> List[Notification]:
    """One Risk per critical ticket that is still open."""
    alerts: List[Notification] = []
    for ticket in tickets:
        if ticket.priority != TicketPriority.CRITICAL.value:
            continue
        if ticket.status in CLOSED_TICKET_STATUSES:
            continue
        opened_at = parse_timestamp(ticket.opened_at)
        if opened_at is None:
            logger.warning("Critical ticket without a readable open date", extra={"ticket_id": ticket.id})
            continue
        alerts.append(
            Notification(
                id=f"notif-tick-{ticket.id}",
                type=NotificationType.RISK,
                title=f"Critical ticket: {names.get(ticket.account_id or '', UNKNOWN_ACCOUNT_NAME)}",
                message=ticket.subject or "",
                timestamp=opened_at,
                link_to=LINK_TICKETS,
            )
        )
    return alerts


def revenue_risk_alerts(
    financials: List[FinancialRecord], names: Dict[str, str], now: datetime
) -> List[Notification]:
    """One Risk per churn or contraction booked in the current calendar month."""
    current_month = year_month(now)
    alerts: List[Notification] = []
    for record in financials:
        if record.movement_type not in RISK_MOVEMENTS:
            continue
        if not (record.date or "").startswith(current_month):
            continue
        booked_at = parse_timestamp(record.date)
        if booked_at is None:
            continue
        alerts.append(
            Notification(
                id=f"notif-fin-{record.id}",
                type=NotificationType.RISK,
                title=f"Revenue alert: {names.get(record.account_id or '', UNKNOWN_ACCOUNT_NAME)}",
                message=f"{record.movement_type} recorded for {record.amount:,.2f}.",
                timestamp=booked_at,
                link_to=LINK_FINANCIALS,
            )
        )
    return alerts


def upcoming_meeting_alerts(
    meetings: List[Meeting], names: Dict[str, str], now: datetime
) -> List[Notification]:
    """One Task per meeting scheduled for today or tomorrow."""
    today = now.date()
    alerts: List[Notification] = []
    for meeting in meetings:
        meeting_day = parse_date(meeting.date)
        if meeting_day is None:
            continue
        offset = (meeting_day - today).days
        if offset < 0 or offset > UPCOMING_MEETING_DAYS:
            continue
        account_name = meeting.account_name or names.get(
            meeting.account_id or "", UNKNOWN_ACCOUNT_NAME
        )
        when = "today" if offset == 0 else "tomorrow"
        alerts.append(
            Notification(
                id=f"notif-meet-{meeting.id}",
                type=NotificationType.TASK,
                title=f"Upcoming meeting: {account_name}",
                message=f"{meeting.type or 'Meeting'} scheduled for {when}. Prepare the agenda.",
                timestamp=now,
                link_to=LINK_MEETINGS,
            )
        )
    return alerts


def due_activity_alerts(accounts: List[Account], now: datetime) -> List[Notification]:
    """One Task per open activity due within its own alert window."""
    today = now.date()
    alerts: List[Notification] = []
    for account in accounts:
        for activity in account.activities:
            if activity.status == ActivityStatus.COMPLETED.value:
                continue
            due = parse_date(activity.due_date)
            if due is None:
                continue
            offset = (due - today).days
            window = activity.alert_days or DEFAULT_ACTIVITY_ALERT_DAYS
            if offset < 0 or offset > window:
                continue
            alerts.append(
                Notification(
                    id=f"notif-act-{activity.id}",
                    type=NotificationType.TASK,
                    title=f"Activity due: {account.name or UNKNOWN_ACCOUNT_NAME}",
                    message=f"{activity.title or 'Activity'} is due in {offset} day(s).",
                    timestamp=now,
                    link_to=LINK_ACTIVITIES,
                )
            )
    return alerts


def compute_notifications(
    tickets: Optional[Iterable[Any]],
    financials: Optional[Iterable[Any]],
    meetings: Optional[Iterable[Any]],
    accounts: Optional[Iterable[Any]],
    now: Optional[datetime] = None,
    include_activity_alerts: bool = False,
) -> List[Notification]:
    """Run every rule and return the feed sorted by timestamp, newest first."""
    moment = ensure_aware(now) if now else datetime.now(timezone.utc)
    account_list = coerce_records(Account, accounts)
    names = _account_names(account_list)

    notifications: List[Notification] = []
    notifications.extend(critical_ticket_alerts(coerce_records(TicketRecord, tickets), names))
    notifications.extend(
        revenue_risk_alerts(coerce_records(FinancialRecord, financials), names, moment)
    )
    notifications.extend(upcoming_meeting_alerts(coerce_records(Meeting, meetings), names, moment))
    if include_activity_alerts:
        notifications.extend(due_activity_alerts(account_list, moment))

    notifications.sort(key=lambda item: item.timestamp, reverse=True)
    logger.debug("Notifications computed", extra={"count": len(notifications)})
    return notifications
