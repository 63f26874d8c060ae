# freshmarket/routes/webhooks.py
import json
import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from freshmarket.config import settings
from freshmarket.database import get_db
from freshmarket.errors import ForbiddenError
from freshmarket.models.webhook_event import WebhookEventStatus
from freshmarket.services import webhooks as webhook_service
from freshmarket.utils.audit import write_log, client_ip
from freshmarket.utils.fedapay_client import FedaPayClient, get_payment_gateway

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = logging.getLogger(__name__)

FAIL_STATUSES = {WebhookEventStatus.FAILED.value, WebhookEventStatus.REJECTED.value}


# FedaPay notification. Answers 200 whenever the event could be stored, even
# if applying it failed: the stored event is retried on later deliveries.
@router.post("/fedapay")
async def fedapay_notify(
    request: Request,
    db: Session = Depends(get_db),
    signature: str = Header(None, alias="X-FEDAPAY-SIGNATURE"),
    gateway: FedaPayClient = Depends(get_payment_gateway),
):
    body = await request.body()
    logger.info("FedaPay webhook received, body_preview=%s", body[:500].decode("utf-8", errors="replace"))

    secret = settings.FEDAPAY_WEBHOOK_SECRET
    if secret and not webhook_service.verify_signature(signature, body, secret):
        logger.warning("FedaPay webhook signature verification failed")
        raise ForbiddenError("Signature verification failed")

    try:
        payload = json.loads(body)
    except ValueError:
        logger.warning("FedaPay webhook with unreadable body ignored")
        return {"received": False}
    if not isinstance(payload, dict):
        return {"received": False}

    # Unsigned events are checked against FedaPay before they change an order
    event, duplicate = webhook_service.record_event(db, payload, verified=bool(secret))
    if duplicate:
        return {"received": True, "duplicate": True}

    event = await webhook_service.handle_event(db, gateway, event)
    await webhook_service.retry_failed_events(db, gateway, settings.WEBHOOK_MAX_ATTEMPTS, exclude_id=event.id)

    write_log(db, user_id=None, action="PAYMENT_WEBHOOK", resource="payments",
              status="FAIL" if event.status in FAIL_STATUSES else "SUCCESS",
              ip=client_ip(request),
              meta={"event": event.event, "transaction_id": event.transaction_id, "result": event.status})
    return {"received": True}
