"""
Order status lifecycle.

Single source of truth for which status changes are legal. The supplier's
manual update, buyer cancellation, and both payment-confirmation paths
(poll and webhook) all go through ``apply_status``.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from freshmarket.errors import ConflictError, InvalidTransitionError, NotCancellableError
from freshmarket.models.order import Order, OrderStatus, OrderStatusHistory

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL = {s for s, targets in ALLOWED_TRANSITIONS.items() if not targets}


def can_transition(current, target) -> bool:
    return OrderStatus(target) in ALLOWED_TRANSITIONS[OrderStatus(current)]


def transition(current, target) -> OrderStatus:
    """Return the new status, or raise if ``current -> target`` is illegal."""
    current, target = OrderStatus(current), OrderStatus(target)
    if target in ALLOWED_TRANSITIONS[current]:
        return target
    if target == OrderStatus.CANCELLED:
        raise NotCancellableError(f"Cannot cancel an order with status: {current.value}")
    if current in TERMINAL:
        raise InvalidTransitionError(f"Order is {current.value}, its status can no longer change")
    raise InvalidTransitionError(f"Cannot change status from {current.value} to {target.value}")


def record_history(order: Order, status, comment: Optional[str] = None) -> OrderStatusHistory:
    entry = OrderStatusHistory(status=OrderStatus(status).value, comment=comment)
    order.history.append(entry)
    return entry


def apply_status(db: Session, order: Order, target, comment: Optional[str] = None) -> OrderStatus:
    """Move ``order`` to ``target`` with a compare-and-set on its current status.

    Appends one history entry. Raises ConflictError if another writer changed
    the status in between. Does not commit.
    """
    current = OrderStatus(order.status)
    new_status = transition(current, target)
    now = datetime.now(timezone.utc)

    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == current.value)
        .values(status=new_status.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Order status was changed concurrently, reload and retry")

    set_committed_value(order, "status", new_status.value)
    set_committed_value(order, "updated_at", now)
    record_history(order, new_status, comment)
    logger.info("Order %s: %s -> %s", order.id, current.value, new_status.value)
    return new_status
