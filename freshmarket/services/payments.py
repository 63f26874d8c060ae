# freshmarket/services/payments.py
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from freshmarket.errors import (
    NotFoundError, ForbiddenError, ValidationError, AlreadyPaidError, GatewayTimeout,
)
from freshmarket.models.order import Order, OrderStatus, PaymentStatus, PaymentMethod
from freshmarket.models.users import User
from freshmarket.services.lifecycle import apply_status
from freshmarket.utils.fedapay_client import FedaPayClient, SUCCESS_STATUSES, FAILURE_STATUSES

logger = logging.getLogger(__name__)

# Legacy payloads only carry the order id inside "Commande Fresh Market #<id>"
DESCRIPTION_ORDER_ID = re.compile(r"#(\d+)\b")


async def initiate_payment(db: Session, gateway: FedaPayClient, order_id: int, buyer: User,
                           method: PaymentMethod, phone: Optional[str] = None) -> dict:
    """Open a gateway transaction for a pending order owned by ``buyer``."""
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if order.buyer_id != buyer.id:
        raise ForbiddenError("You are not allowed to pay this order")
    if order.status != OrderStatus.PENDING.value or order.payment_status == PaymentStatus.SUCCEEDED.value:
        raise AlreadyPaidError()
    if PaymentMethod(method) == PaymentMethod.CASH:
        raise ValidationError("Cash orders are paid on delivery")

    phone = phone or order.delivery_phone or buyer.phone
    amount = order.total
    # Release the read transaction while waiting on the provider
    db.commit()

    txn = await gateway.create_transaction(amount=amount, phone=phone, order_id=order_id,
                                           mode=PaymentMethod(method).value)

    # The order may have been paid or cancelled while the provider answered
    result = db.execute(
        update(Order)
        .where(
            Order.id == order_id,
            Order.status == OrderStatus.PENDING.value,
            Order.payment_status != PaymentStatus.SUCCEEDED.value,
        )
        .values(
            payment_method=PaymentMethod(method).value,
            payment_reference=txn["id"],
            payment_status=PaymentStatus.PENDING.value,
            payment_amount=amount,
            payment_transaction_id=None,
            paid_at=None,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise AlreadyPaidError()
    db.commit()

    logger.info("Payment initiated for order %s: transaction %s", order_id, txn["id"])
    return txn


def find_order_for_transaction(db: Session, transaction_id: Optional[str], metadata: Optional[dict] = None,
                               description: Optional[str] = None) -> Optional[Order]:
    """Locate the order a gateway transaction pays for.

    Tries the stored payment reference, then the order id embedded in the
    transaction metadata, then the ``#<id>`` pattern of the description.
    """
    if transaction_id:
        order = db.query(Order).filter(Order.payment_reference == str(transaction_id)).first()
        if order:
            return order

    order_id = (metadata or {}).get("order_id")
    if order_id is None and description:
        match = DESCRIPTION_ORDER_ID.search(description)
        if match:
            order_id = match.group(1)
    if order_id is None:
        return None
    try:
        return db.get(Order, int(order_id))
    except (TypeError, ValueError):
        return None


def confirm_payment(db: Session, order: Order, transaction_id: Optional[str] = None, source: str = "poll") -> bool:
    """Mark the payment succeeded and move the order to ``payee``.

    Compare-and-set on the payment status: only the first confirmation for an
    order wins, later ones (webhook redelivery, poll racing the webhook)
    return False and change nothing. Commits.
    """
    now = datetime.now(timezone.utc)
    values = dict(payment_status=PaymentStatus.SUCCEEDED.value, paid_at=now, updated_at=now)
    if transaction_id:
        values["payment_transaction_id"] = str(transaction_id)

    try:
        result = db.execute(
            update(Order)
            .where(Order.id == order.id, Order.payment_status != PaymentStatus.SUCCEEDED.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            logger.info("Payment for order %s already confirmed, ignoring %s confirmation", order.id, source)
            return False

        db.refresh(order)
        if order.status == OrderStatus.PENDING.value:
            apply_status(db, order, OrderStatus.PAID, f"Paiement confirmé ({source})")
        elif order.status == OrderStatus.CANCELLED.value:
            logger.warning("Payment received for cancelled order %s, refund required", order.id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Payment for order %s confirmed via %s", order.id, source)
    return True


def fail_payment(db: Session, order: Order, transaction_id: str, source: str = "poll") -> bool:
    """Record a declined transaction. The order stays payable. Commits."""
    result = db.execute(
        update(Order)
        .where(
            Order.id == order.id,
            Order.payment_status == PaymentStatus.PENDING.value,
            # A late decline of an older attempt must not fail the current one
            Order.payment_reference == str(transaction_id),
        )
        .values(payment_status=PaymentStatus.FAILED.value, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 1:
        logger.info("Payment %s for order %s failed (%s)", transaction_id, order.id, source)
        return True
    return False


async def poll_payment_status(db: Session, gateway: FedaPayClient, transaction_id: str, user: User) -> dict:
    """Ask the gateway for a transaction's status and reconcile the order."""
    order = db.query(Order).filter(Order.payment_reference == transaction_id).first()
    if order is None:
        raise NotFoundError("No order for this transaction")
    if user.id not in (order.buyer_id, order.supplier_id):
        raise ForbiddenError("You are not allowed to view this payment")
    order_id = order.id
    db.commit()

    try:
        txn = await gateway.get_transaction(transaction_id)
    except GatewayTimeout:
        # Unknown is not failed: the buyer polls again
        db.refresh(order)
        return {
            "transaction_id": transaction_id, "status": "unknown", "order_id": order_id,
            "payment_status": order.payment_status, "order_status": order.status, "retry": True,
        }

    status = (txn.get("status") or "").lower()
    if status in SUCCESS_STATUSES:
        confirm_payment(db, order, txn.get("reference") or transaction_id, source="poll")
    elif status in FAILURE_STATUSES:
        fail_payment(db, order, transaction_id, source="poll")

    db.refresh(order)
    return {
        "transaction_id": transaction_id, "status": status, "order_id": order_id,
        "payment_status": order.payment_status, "order_status": order.status, "retry": False,
    }
