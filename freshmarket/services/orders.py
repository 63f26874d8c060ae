# freshmarket/services/orders.py
import logging
from collections import OrderedDict
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload, selectinload

from freshmarket.config import settings
from freshmarket.errors import (
    NotFoundError, ForbiddenError, EmptyCartError, ProductUnavailableError,
    InsufficientStockError, MixedSupplierError, InvalidTransitionError,
)
from freshmarket.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from freshmarket.models.product import Product
from freshmarket.models.users import User
from freshmarket.schemas.order import OrderCreatePayload
from freshmarket.services import catalog
from freshmarket.services.lifecycle import apply_status, record_history

logger = logging.getLogger(__name__)


def _merge_lines(payload: OrderCreatePayload) -> "OrderedDict[int, int]":
    # The same product twice in a cart is one line
    lines = OrderedDict()
    for line in payload.products:
        lines[line.product_id] = lines.get(line.product_id, 0) + line.quantity
    return lines


def _with_relations(query):
    return query.options(
        joinedload(Order.buyer),
        joinedload(Order.supplier),
        selectinload(Order.items),
        selectinload(Order.history),
    )


def create_order(db: Session, buyer: User, payload: OrderCreatePayload) -> Order:
    """Validate a cart, reserve its stock and persist the order.

    Prices come from the catalog, never from the client. The order insert
    and every stock decrement share one transaction; a decrement that would
    take a product below zero rolls the whole order back.
    """
    lines = _merge_lines(payload)
    if not lines:
        raise EmptyCartError()

    try:
        snapshots = []
        supplier_ids = set()
        subtotal = 0

        for product_id, qty in lines.items():
            product = db.get(Product, product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            if not product.available:
                raise ProductUnavailableError(f"Product {product.name} is not available")
            if product.quantity < qty:
                raise InsufficientStockError(
                    f"Insufficient stock for {product.name} (available: {product.quantity})"
                )

            line_total = product.price * qty
            subtotal += line_total
            supplier_ids.add(product.supplier_id)
            snapshots.append(OrderItem(
                product_id=product.id, name=product.name, unit_price=product.price,
                quantity=qty, line_total=line_total,
            ))

        if len(supplier_ids) > 1:
            raise MixedSupplierError()

        address = payload.delivery_address
        delivery_fee = settings.DELIVERY_FEE
        order = Order(
            buyer_id=buyer.id,
            supplier_id=supplier_ids.pop(),
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            total=subtotal + delivery_fee,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            delivery_city=address.city or buyer.city,
            delivery_district=address.district or buyer.district,
            delivery_instructions=address.instructions,
            delivery_phone=address.phone or buyer.phone,
            items=snapshots,
        )
        record_history(order, OrderStatus.PENDING, "Commande créée")
        db.add(order)

        for product_id, qty in lines.items():
            # Another order may have taken the stock since it was read above
            if not catalog.adjust_quantity(db, product_id, -qty, require_available=True):
                raise InsufficientStockError(f"Insufficient stock for product {product_id}")

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Order %s created by buyer %s (total=%s)", order.id, buyer.id, order.total)
    return get_order(db, order.id)


def get_order(db: Session, order_id: int) -> Order:
    order = _with_relations(db.query(Order)).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_order_for(db: Session, order_id: int, user: User) -> Order:
    """Fetch an order visible to ``user``: its buyer or its supplier only."""
    order = get_order(db, order_id)
    if user.id not in (order.buyer_id, order.supplier_id):
        raise ForbiddenError("You are not allowed to view this order")
    return order


def list_orders_for(db: Session, user: User, page: int = 1, page_size: int = 20) -> Tuple[List[Order], int]:
    query = db.query(Order)
    if user.is_supplier:
        query = query.filter(Order.supplier_id == user.id)
    else:
        query = query.filter(Order.buyer_id == user.id)

    total = query.count()
    rows = (
        _with_relations(query)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return rows, total


def _restore_stock(db: Session, order: Order) -> None:
    for item in order.items:
        # Listing deleted since; nothing to give back
        if item.product_id is None:
            continue
        catalog.adjust_quantity(db, item.product_id, item.quantity)


def _cancel(db: Session, order: Order, comment: Optional[str]) -> None:
    was_paid = order.status == OrderStatus.PAID.value
    apply_status(db, order, OrderStatus.CANCELLED, comment)
    _restore_stock(db, order)
    if was_paid:
        logger.warning("Order %s cancelled after payment %s, refund required", order.id, order.payment_reference)


def cancel_order(db: Session, order_id: int, buyer: User, comment: Optional[str] = None) -> Order:
    """Buyer cancellation; status write and stock restore commit together."""
    order = get_order(db, order_id)
    if order.buyer_id != buyer.id:
        raise ForbiddenError("You are not allowed to cancel this order")

    try:
        _cancel(db, order, comment or "Annulée par l'acheteur")
        db.commit()
    except Exception:
        db.rollback()
        raise
    return get_order(db, order_id)


def update_status(db: Session, order_id: int, supplier: User, target: OrderStatus,
                  comment: Optional[str] = None) -> Tuple[Order, str]:
    """Supplier manual transition. Cancelling here restores stock too.

    Returns the reloaded order and the previous status.
    """
    order = get_order(db, order_id)
    if order.supplier_id != supplier.id:
        raise ForbiddenError("You are not allowed to update this order")

    old_status = order.status
    try:
        if OrderStatus(target) == OrderStatus.CANCELLED:
            _cancel(db, order, comment)
        else:
            apply_status(db, order, target, comment)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return get_order(db, order_id), old_status


def rate_order(db: Session, order_id: int, buyer: User, rating: int, comment: Optional[str] = None) -> Order:
    order = get_order(db, order_id)
    if order.buyer_id != buyer.id:
        raise ForbiddenError("You are not allowed to rate this order")
    if order.status != OrderStatus.DELIVERED.value:
        raise InvalidTransitionError("Only delivered orders can be rated")

    order.buyer_rating = rating
    order.buyer_comment = comment
    db.commit()
    return get_order(db, order_id)

