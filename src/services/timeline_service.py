"""
Account timeline aggregation.

Merges meetings, VOC notes, activities, product lifecycle dates, health score
history and success plan milestones into one feed ordered newest first. The
aggregation is a pure function of its inputs: events are rebuilt from scratch
on every call and never mutated once produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

from models.account import Activity, ActivityStatus, Product
from models.common import coerce_records
from models.derived import TimelineEvent, TimelineEventType
from models.engagement import Meeting, SuccessPlan
from utils.dates import parse_timestamp
from utils.logging_config import get_logger

logger = get_logger(__name__)

VOC_TITLE_LIMIT = 60
HEALTH_HISTORY_DAY = 15
HEALTHY_SCORE_THRESHOLD = 70

# Score history only carries a month abbreviation. Portuguese names come from
# the CRM forms, English ones from newer imports.
MONTH_NUMBERS: Dict[str, int] = {
    "jan": 1,
    "fev": 2,
    "feb": 2,
    "mar": 3,
    "abr": 4,
    "apr": 4,
    "mai": 5,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "ago": 8,
    "aug": 8,
    "set": 9,
    "sep": 9,
    "out": 10,
    "oct": 10,
    "nov": 11,
    "dez": 12,
    "dec": 12,
}

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def infer_history_date(month_name: Optional[str], reference_date: date) -> date:
    """
    Place a month-only health score entry on the calendar.

    History is a rolling 12-month window, so a month later in the year than
    the reference month belongs to the previous year. Unknown month names
    fall back to January.
    """
    month = MONTH_NUMBERS.get((month_name or "").strip()[:3].lower(), 1)
    year = reference_date.year - 1 if month > reference_date.month else reference_date.year
    return date(year, month, HEALTH_HISTORY_DAY)


class FilterCategory(str, Enum):
    """Toggles offered by the timeline filter bar."""

    MEETING = "MEETING"
    ACTIVITY = "ACTIVITY"
    VOC = "VOC"
    HEALTH = "HEALTH"
    MILESTONE = "MILESTONE"
    SUCCESS_PLAN_START = "SUCCESS_PLAN_START"
    ALL = "ALL"


ALL_EVENT_TYPES: FrozenSet[TimelineEventType] = frozenset(TimelineEventType)

# HEALTH is the only multi-type category: product lifecycle events and score
# history always switch on and off together.
CATEGORY_GROUPS: Dict[FilterCategory, FrozenSet[TimelineEventType]] = {
    FilterCategory.MEETING: frozenset({TimelineEventType.MEETING}),
    FilterCategory.ACTIVITY: frozenset({TimelineEventType.ACTIVITY}),
    FilterCategory.VOC: frozenset({TimelineEventType.VOC}),
    FilterCategory.HEALTH: frozenset(
        {TimelineEventType.HEALTH_SCORE, TimelineEventType.PRODUCT}
    ),
    FilterCategory.MILESTONE: frozenset({TimelineEventType.MILESTONE}),
    FilterCategory.SUCCESS_PLAN_START: frozenset({TimelineEventType.SUCCESS_PLAN_START}),
    FilterCategory.ALL: ALL_EVENT_TYPES,
}

_CATEGORY_ALIASES = {
    "HEALTH_SCORE": FilterCategory.HEALTH,
    "PRODUCT": FilterCategory.HEALTH,
}


def to_category(value: Union[str, FilterCategory]) -> FilterCategory:
    """Resolve a category name; event type names map onto their category."""
    if isinstance(value, FilterCategory):
        return value
    name = str(value).strip().upper()
    return _CATEGORY_ALIASES.get(name) or FilterCategory(name)


@dataclass(frozen=True)
class TimelineFilter:
    """Immutable set of event types currently shown."""

    active: FrozenSet[TimelineEventType] = field(default=ALL_EVENT_TYPES)

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "TimelineFilter":
        """Build a filter from category names, ignoring unknown ones."""
        active: set = set()
        for name in names:
            try:
                active |= CATEGORY_GROUPS[to_category(name)]
            except ValueError:
                logger.warning("Ignoring unknown timeline filter", extra={"filter": name})
        return cls(frozenset(active))

    def toggle(self, category: Union[str, FilterCategory]) -> "TimelineFilter":
        """
        Switch a category on or off.

        A group that is fully active is removed as a whole; otherwise every
        member is added. ALL resets to showing everything.
        """
        resolved = to_category(category)
        if resolved is FilterCategory.ALL:
            return TimelineFilter()
        group = CATEGORY_GROUPS[resolved]
        if group <= self.active:
            return TimelineFilter(self.active - group)
        return TimelineFilter(self.active | group)

    def is_active(self, category: Union[str, FilterCategory]) -> bool:
        return bool(CATEGORY_GROUPS[to_category(category)] & self.active)

    def allows(self, event_type: TimelineEventType) -> bool:
        return event_type in self.active


def _tags(*values: Optional[str]) -> tuple:
    return tuple(value for value in values if value)


def _format_score(score: float) -> str:
    return f"{score:g}"


def _meeting_events(meeting: Meeting) -> List[TimelineEvent]:
    risks = meeting.risks
    events = [
        TimelineEvent(
            id=f"meet-{meeting.id}",
            original_id=meeting.id,
            date=meeting.date,
            type=TimelineEventType.MEETING,
            title=meeting.summary or f"{meeting.type} - {meeting.account_name}",
            description=f"Risks: {', '.join(risks)}" if risks else None,
            tags=_tags(meeting.type, meeting.product_name or "General"),
            subtitle=f"{len(meeting.participants)} participants",
            meta={"participants": list(meeting.participants)},
        )
    ]

    note = meeting.voc_detailed
    if note:
        suffix = "..." if len(note) > VOC_TITLE_LIMIT else ""
        events.append(
            TimelineEvent(
                id=f"voc-{meeting.id}",
                original_id=meeting.id,
                date=meeting.date,
                type=TimelineEventType.VOC,
                title=f"VOC: {note[:VOC_TITLE_LIMIT]}{suffix}",
                description=note,
                tags=_tags(meeting.voc_type or "Feedback", meeting.voc_urgency or "Medium"),
                subtitle=f"Status: {meeting.voc_status or 'Pending'}",
                meta={"urgency": meeting.voc_urgency, "status": meeting.voc_status},
            )
        )
    return events


def _activity_event(activity: Activity, product_names: Dict[str, str]) -> TimelineEvent:
    done = activity.status == ActivityStatus.COMPLETED.value
    return TimelineEvent(
        id=f"act-{activity.id}",
        original_id=activity.id,
        date=activity.due_date,
        type=TimelineEventType.ACTIVITY,
        title=activity.title or "",
        description=activity.notes,
        tags=_tags(
            "Completed" if done else "Pending",
            activity.urgency,
            product_names.get(activity.product_id or ""),
        ),
        subtitle=(
            f"{activity.status or 'No status'} • {activity.category or 'General'} • "
            f"{activity.owner or 'No owner'}"
        ),
        meta={"owner": activity.owner, "status": activity.status, "category": activity.category},
    )


def _product_events(product: Product, today: date) -> List[TimelineEvent]:
    events: List[TimelineEvent] = []
    if product.setup_started_on:
        events.append(
            TimelineEvent(
                id=f"prod-setup-{product.id}",
                original_id=product.id,
                date=product.setup_started_on,
                type=TimelineEventType.PRODUCT,
                title=f"Setup started: {product.name}",
                description="Official start of the implementation process.",
                tags=_tags("Setup", product.name),
                subtitle="Activation phase",
                meta={"mrr": product.mrr},
            )
        )

    go_live = product.go_live_done_on or product.go_live_planned_on
    if go_live:
        realized = bool(product.go_live_done_on)
        events.append(
            TimelineEvent(
                id=f"prod-golive-{product.id}",
                original_id=product.id,
                date=go_live,
                type=TimelineEventType.PRODUCT,
                title=f"Go-live: {product.name}",
                description=(
                    "Product went live successfully." if realized else "Planned go-live date."
                ),
                tags=_tags("Go-Live", product.name),
                subtitle="Done" if realized else "Planned",
                meta={"mrr": product.mrr},
            )
        )

    for idx, entry in enumerate(product.score_history):
        score = entry.score
        events.append(
            TimelineEvent(
                id=f"hs-{product.id}-{idx}",
                original_id=product.id,
                date=infer_history_date(entry.month, today).isoformat(),
                type=TimelineEventType.HEALTH_SCORE,
                title=f"Health score: {_format_score(score)}",
                description="Historical product health record.",
                tags=_tags(
                    product.name,
                    "Healthy" if score >= HEALTHY_SCORE_THRESHOLD else "At risk",
                ),
                subtitle=f"Score {_format_score(score)}/100",
                meta={"score": score},
            )
        )
    return events


def _success_plan_events(plan: SuccessPlan) -> List[TimelineEvent]:
    events: List[TimelineEvent] = []
    if plan.created_at:
        events.append(
            TimelineEvent(
                id=f"sp-start-{plan.id}",
                original_id=plan.id,
                date=plan.created_at,
                type=TimelineEventType.SUCCESS_PLAN_START,
                title="Success plan started",
                description=f'Objective: "{plan.objective or "Not defined"}"',
                tags=_tags("Strategy", plan.status or "Active"),
                subtitle=f"{len(plan.milestones)} milestones defined",
            )
        )

    for milestone in plan.milestones:
        events.append(
            TimelineEvent(
                id=f"milestone-{milestone.id}",
                original_id=milestone.id,
                date=milestone.due_date,
                type=TimelineEventType.MILESTONE,
                title=f"Milestone: {milestone.title}",
                description=f"Target KPI: {milestone.kpi}" if milestone.kpi else None,
                tags=_tags(milestone.status or "Pending"),
                subtitle=f"Owner: {milestone.responsible or 'No owner'}",
                meta={"status": milestone.status},
            )
        )
    return events


def _newest_first(event: TimelineEvent):
    moment = parse_timestamp(event.date)
    return (moment is not None, moment or _OLDEST)


def aggregate(
    meetings: Optional[Iterable[Any]],
    activities: Optional[Iterable[Any]],
    products: Optional[Iterable[Any]],
    success_plan: Optional[Any] = None,
    active_filters: Union[TimelineFilter, Iterable[str], None] = None,
    today: Optional[date] = None,
) -> List[TimelineEvent]:
    """
    Build the filtered timeline, newest first.

    Events sharing a date keep their build order (meetings, activities,
    products, success plan); that order is not part of the contract. Events
    whose date cannot be read sort last. `today` anchors the health score
    year inference and defaults to the current date.
    """
    if active_filters is None:
        timeline_filter = TimelineFilter()
    elif isinstance(active_filters, TimelineFilter):
        timeline_filter = active_filters
    else:
        timeline_filter = TimelineFilter.from_names(active_filters)
    reference = today or date.today()

    product_list = coerce_records(Product, products)
    product_names: Dict[str, str] = {}
    for product in product_list:
        if product.id and product.name and product.id not in product_names:
            product_names[product.id] = product.name

    events: List[TimelineEvent] = []
    for meeting in coerce_records(Meeting, meetings):
        events.extend(_meeting_events(meeting))
    for activity in coerce_records(Activity, activities):
        events.append(_activity_event(activity, product_names))
    for product in product_list:
        events.extend(_product_events(product, reference))
    if success_plan is not None:
        for plan in coerce_records(SuccessPlan, [success_plan]):
            events.extend(_success_plan_events(plan))

    visible = [event for event in events if timeline_filter.allows(event.type)]
    ordered = sorted(visible, key=_newest_first, reverse=True)
    logger.debug(
        "Timeline aggregated",
        extra={"events_total": len(events), "events_visible": len(ordered)},
    )
    return ordered
