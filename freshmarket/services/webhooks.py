# freshmarket/services/webhooks.py
import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from freshmarket.errors import UpstreamError
from freshmarket.models.order import Order
from freshmarket.models.webhook_event import WebhookEvent, WebhookEventStatus
from freshmarket.services.payments import find_order_for_transaction, confirm_payment, fail_payment
from freshmarket.utils.fedapay_client import FedaPayClient, SUCCESS_STATUSES, FAILURE_STATUSES

logger = logging.getLogger(__name__)

SUCCESS_EVENTS = {"transaction.approved", "transaction.successful", "transaction.transferred"}
FAILURE_EVENTS = {"transaction.declined", "transaction.canceled"}

SETTLED = {WebhookEventStatus.PROCESSED, WebhookEventStatus.IGNORED, WebhookEventStatus.REJECTED}
RETRYABLE = {WebhookEventStatus.FAILED, WebhookEventStatus.UNMATCHED}

# Width of the event and transaction_id columns
MAX_KEY_LENGTH = 64


def verify_signature(header_signature: Optional[str], body: bytes, secret: str) -> bool:
    """Check a ``t=<timestamp>,s=<hex hmac>`` signature header.

    The signed message is ``<timestamp>.<raw body>`` (HMAC-SHA256).
    """
    if not header_signature:
        return False
    try:
        parts = dict(p.strip().split("=", 1) for p in header_signature.split(","))
    except ValueError:
        return False

    timestamp, signature = parts.get("t"), parts.get("s")
    if not timestamp or not signature:
        return False

    message = timestamp.encode("utf-8") + b"." + body
    expected = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def _event_parts(payload: dict) -> Tuple[str, dict]:
    # FedaPay sends {"name", "entity"}; older integrations posted {"event", "data"}
    name = payload.get("name") or payload.get("event") or ""
    entity = payload.get("entity") or payload.get("data") or {}
    return name, entity if isinstance(entity, dict) else {}


def record_event(db: Session, payload: dict, verified: bool = False) -> Tuple[WebhookEvent, bool]:
    """Persist an incoming notification.

    Returns the stored event and whether it duplicates one that was already
    settled (same event name and transaction). Unmatched and failed events
    are not settled: their redeliveries are stored and applied again.
    """
    name, entity = _event_parts(payload)
    name = str(name)[:MAX_KEY_LENGTH]
    transaction_id = str(entity["id"])[:MAX_KEY_LENGTH] if entity.get("id") is not None else None

    if transaction_id is not None:
        done = (
            db.query(WebhookEvent)
            .filter(
                WebhookEvent.event == name,
                WebhookEvent.transaction_id == transaction_id,
                WebhookEvent.status.in_([s.value for s in SETTLED]),
            )
            .first()
        )
        if done:
            logger.info("Duplicate webhook %s for transaction %s (event %s)", name, transaction_id, done.id)
            return done, True

    event = WebhookEvent(event=name, transaction_id=transaction_id, payload=payload, verified=verified)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event, False


async def _check_with_provider(db: Session, gateway: FedaPayClient, event: WebhookEvent,
                               order: Order) -> Optional[Tuple[bool, str]]:
    """Ask FedaPay what the transaction really is.

    Returns ``(succeeded, reference)`` from the provider's view, or None when
    the transaction does not belong to ``order``. Raises while the provider
    still reports it as pending, so the event is retried later.
    """
    if event.transaction_id is None:
        return None

    order_id, payment_reference = order.id, order.payment_reference
    # Release the read transaction while waiting on the provider
    db.commit()
    txn = await gateway.get_transaction(event.transaction_id)

    metadata_order = (txn.get("custom_metadata") or {}).get("order_id")
    if payment_reference != event.transaction_id and str(metadata_order) != str(order_id):
        return None

    status = (txn.get("status") or "").lower()
    if status in SUCCESS_STATUSES:
        return True, txn.get("reference") or event.transaction_id
    if status in FAILURE_STATUSES:
        return False, event.transaction_id
    raise UpstreamError(f"FedaPay reports transaction {event.transaction_id} as {status or 'unknown'}")


async def process_event(db: Session, gateway: FedaPayClient, event: WebhookEvent) -> WebhookEventStatus:
    name, entity = _event_parts(event.payload)

    if name not in SUCCESS_EVENTS and name not in FAILURE_EVENTS:
        return WebhookEventStatus.IGNORED

    order = find_order_for_transaction(
        db, event.transaction_id, entity.get("custom_metadata"), entity.get("description"),
    )
    if order is None:
        logger.warning("Webhook %s: no order for transaction %s", name, event.transaction_id)
        return WebhookEventStatus.UNMATCHED

    succeeded = name in SUCCESS_EVENTS
    reference = entity.get("reference") or event.transaction_id
    # Only a signed event for the transaction this order is waiting on is taken as is
    if not (event.verified and event.transaction_id == order.payment_reference):
        outcome = await _check_with_provider(db, gateway, event, order)
        if outcome is None:
            logger.warning("Webhook %s: transaction %s does not belong to order %s, rejected",
                           name, event.transaction_id, order.id)
            return WebhookEventStatus.REJECTED
        succeeded, reference = outcome

    if succeeded:
        confirm_payment(db, order, reference, source="webhook")
    else:
        fail_payment(db, order, event.transaction_id, source="webhook")
    return WebhookEventStatus.PROCESSED


async def handle_event(db: Session, gateway: FedaPayClient, event: WebhookEvent) -> WebhookEvent:
    """Apply a stored event, recording a failure instead of raising."""
    event.attempts += 1
    db.commit()

    try:
        status = await process_event(db, gateway, event)
    except Exception as e:
        db.rollback()
        logger.exception("Webhook event %s failed (attempt %s): %s", event.id, event.attempts, e)
        event.status = WebhookEventStatus.FAILED.value
        event.last_error = str(e)[:1000]
        db.commit()
        return event

    event.status = status.value
    event.last_error = None
    event.processed_at = datetime.now(timezone.utc)
    db.commit()
    return event


async def retry_failed_events(db: Session, gateway: FedaPayClient, max_attempts: int, limit: int = 20,
                              exclude_id: Optional[int] = None) -> int:
    """Re-apply failed and unmatched events that still have attempts left.

    Returns how many are now settled.
    """
    query = db.query(WebhookEvent).filter(
        WebhookEvent.status.in_([s.value for s in RETRYABLE]),
        WebhookEvent.attempts < max_attempts,
    )
    if exclude_id is not None:
        query = query.filter(WebhookEvent.id != exclude_id)

    recovered = 0
    for event in query.order_by(WebhookEvent.id).limit(limit).all():
        if WebhookEventStatus((await handle_event(db, gateway, event)).status) in SETTLED:
            recovered += 1
    if recovered:
        logger.info("Recovered %s webhook event(s)", recovered)
    return recovered
