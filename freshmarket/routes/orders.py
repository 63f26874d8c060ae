# freshmarket/routes/orders.py
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from freshmarket.database import get_db
from freshmarket.models.order import Order
from freshmarket.models.users import User, Role
from freshmarket.schemas.order import (
    OrderResponse, OrdersPage, OrderStatusPatch, OrderItemOut, OrderCreatePayload,
    OrderRatingPayload, DeliveryAddress, PaymentOut, StatusHistoryOut,
)
from freshmarket.schemas.user import PartyOut
from freshmarket.services import orders as order_service
from freshmarket.utils.audit import write_log, client_ip
from freshmarket.utils.tokenJWT import get_current_user, role_required

router = APIRouter(prefix="/orders", tags=["Orders"])
logger = logging.getLogger(__name__)

buyer_only = role_required(Role.BUYER)
supplier_only = role_required(Role.SUPPLIER)


def _party(user: User) -> PartyOut:
    return PartyOut(id=user.id, name=user.name, phone=user.phone)


# Map Order model to OrderResponse schema
def _order_to_out(order: Order) -> OrderResponse:
    items: List[OrderItemOut] = [
        OrderItemOut(product_id=it.product_id, name=it.name, unit_price=it.unit_price,
                     quantity=it.quantity, line_total=it.line_total)
        for it in order.items
    ]
    return OrderResponse(
        id=order.id,
        buyer=_party(order.buyer),
        supplier=_party(order.supplier),
        items=items,
        subtotal=order.subtotal,
        delivery_fee=order.delivery_fee,
        total=order.total,
        delivery_address=DeliveryAddress(
            city=order.delivery_city, district=order.delivery_district,
            instructions=order.delivery_instructions, phone=order.delivery_phone,
        ),
        status=order.status,
        payment=PaymentOut(
            method=order.payment_method, reference=order.payment_reference, status=order.payment_status,
            amount=order.payment_amount, transaction_id=order.payment_transaction_id, paid_at=order.paid_at,
        ),
        history=[StatusHistoryOut(status=h.status, created_at=h.created_at, comment=h.comment)
                 for h in order.history],
        buyer_rating=order.buyer_rating,
        buyer_comment=order.buyer_comment,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def _orders_page(db: Session, user: User, page: int, page_size: int) -> dict:
    rows, total = order_service.list_orders_for(db, user, page, page_size)
    return {"items": [_order_to_out(o) for o in rows], "total": total, "page": page, "page_size": page_size}


# Place an order from a single supplier's products
@router.post("", response_model=OrderResponse, status_code=201)
def create_order(
    payload: OrderCreatePayload,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(buyer_only),
):
    order = order_service.create_order(db, current_user, payload)
    write_log(db, user_id=current_user.id, action="ORDER_CREATE", resource="orders", resource_id=order.id,
              ip=client_ip(request), meta={"order_id": order.id, "total": order.total})
    return _order_to_out(order)


# Buyer's orders, newest first
@router.get("/acheteur", response_model=OrdersPage)
def list_buyer_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(buyer_only),
):
    return _orders_page(db, current_user, page, page_size)


# Orders received by the supplier, newest first
@router.get("/fournisseur", response_model=OrdersPage)
def list_supplier_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(supplier_only),
):
    return _orders_page(db, current_user, page, page_size)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _order_to_out(order_service.get_order_for(db, order_id, current_user))


# Supplier moves the order along its lifecycle
@router.put("/{order_id}/statut", response_model=OrderResponse)
def update_order_status(
    order_id: int,
    payload: OrderStatusPatch,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(supplier_only),
):
    order, old_status = order_service.update_status(db, order_id, current_user, payload.status, payload.comment)
    write_log(db, user_id=current_user.id, action="ORDER_STATUS_CHANGE", resource="orders", resource_id=order.id,
              ip=client_ip(request), meta={"order_id": order.id, "old": old_status, "new": order.status})
    return _order_to_out(order)


@router.post("/{order_id}/annuler", response_model=OrderResponse)
def cancel_order(
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(buyer_only),
):
    order = order_service.cancel_order(db, order_id, current_user)
    write_log(db, user_id=current_user.id, action="ORDER_CANCEL", resource="orders", resource_id=order.id,
              ip=client_ip(request), meta={"order_id": order.id})
    return _order_to_out(order)


# Buyer feedback after delivery
@router.post("/{order_id}/evaluer", response_model=OrderResponse)
def rate_order(
    order_id: int,
    payload: OrderRatingPayload,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(buyer_only),
):
    order = order_service.rate_order(db, order_id, current_user, payload.rating, payload.comment)
    write_log(db, user_id=current_user.id, action="ORDER_RATE", resource="orders", resource_id=order.id,
              ip=client_ip(request), meta={"order_id": order.id, "rating": payload.rating})
    return _order_to_out(order)
