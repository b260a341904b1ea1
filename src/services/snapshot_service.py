"""Financial snapshot stamped on meetings when they are recorded."""

from __future__ import annotations

from typing import Optional

from models.account import Product
from models.engagement import Meeting

GENERAL_PRODUCT_NAME = "General"


def capture_meeting_snapshot(
    meeting: Meeting, product: Optional[Product], previous: Optional[Meeting] = None
) -> Meeting:
    """
    Stamp MRR, objective and gap from the product onto the meeting.

    Re-editing a meeting for the same product keeps whatever snapshot values
    the previous version already carried; moving it to another product (or
    creating it) takes a fresh snapshot.
    """
    mrr = product.mrr if product else 0.0
    objective = product.mrr_objective if product else 0.0
    fresh = {
        "mrr_at_time": mrr,
        "mrr_objective_at_time": objective,
        "mrr_gap_at_time": mrr - objective,
    }

    product_id = product.id if product else None
    same_product = previous is not None and previous.product_id == product_id
    update = {}
    for name, value in fresh.items():
        kept = getattr(previous, name) if same_product else None
        update[name] = value if kept is None else kept

    update["product_id"] = product_id
    update["product_name"] = product.name if product and product.name else GENERAL_PRODUCT_NAME
    if previous is not None and previous.id and not meeting.id:
        update["id"] = previous.id
    return meeting.model_copy(update=update)
