# freshmarket/routes/payments.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from freshmarket.database import get_db
from freshmarket.errors import MarketError
from freshmarket.models.users import User, Role
from freshmarket.schemas.payment import PaymentInitPayload, PaymentInitiationResponse, PaymentStatusResponse
from freshmarket.services import payments as payment_service
from freshmarket.utils.audit import write_log, client_ip
from freshmarket.utils.fedapay_client import FedaPayClient, get_payment_gateway
from freshmarket.utils.tokenJWT import get_current_user, role_required

router = APIRouter(prefix="/payments", tags=["Payments"])


# Start a mobile-money payment for a pending order
@router.post("/initier/{order_id}", response_model=PaymentInitiationResponse)
async def initiate_payment(
    order_id: int,
    payload: PaymentInitPayload,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(Role.BUYER)),
    gateway: FedaPayClient = Depends(get_payment_gateway),
):
    try:
        txn = await payment_service.initiate_payment(
            db, gateway, order_id, current_user, payload.method, payload.phone,
        )
    except MarketError as e:
        write_log(db, user_id=current_user.id, action="PAYMENT_INITIATE", resource="payments",
                  resource_id=order_id, status="FAIL",
                  ip=client_ip(request), meta={"order_id": order_id, "reason": e.message})
        raise

    write_log(db, user_id=current_user.id, action="PAYMENT_INITIATE", resource="payments", resource_id=order_id,
              ip=client_ip(request), meta={"order_id": order_id, "transaction_id": txn["id"],
                                           "mode": payload.method.value})
    return PaymentInitiationResponse(
        message="Payment initiated, please confirm on your phone",
        order_id=order_id,
        transaction_id=txn["id"],
        payment_url=txn.get("payment_url"),
    )


# Poll the provider and reconcile the order
@router.get("/statut/{transaction_id}", response_model=PaymentStatusResponse)
async def payment_status(
    transaction_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateway: FedaPayClient = Depends(get_payment_gateway),
):
    result = await payment_service.poll_payment_status(db, gateway, transaction_id, current_user)
    write_log(db, user_id=current_user.id, action="PAYMENT_POLL", resource="payments", resource_id=result["order_id"],
              ip=client_ip(request), meta={"transaction_id": transaction_id, "status": result["status"]})
    return PaymentStatusResponse(**result)
