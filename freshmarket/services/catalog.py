# freshmarket/services/catalog.py
import logging
from typing import Optional

from sqlalchemy import update, or_
from sqlalchemy.orm import Session, Query, joinedload

from freshmarket.errors import NotFoundError, ForbiddenError, ValidationError
from freshmarket.models.order import OrderItem
from freshmarket.models.product import Product, ProductType, CATEGORIES
from freshmarket.models.users import User
from freshmarket.schemas.product import ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)


def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_owned_product(db: Session, product_id: int, supplier: User) -> Product:
    product = get_product(db, product_id)
    if product.supplier_id != supplier.id:
        raise ForbiddenError("You do not own this product")
    return product


def list_products(
    db: Session,
    *,
    type: Optional[str] = None,
    category: Optional[str] = None,
    city: Optional[str] = None,
    price_min: Optional[int] = None,
    price_max: Optional[int] = None,
    search: Optional[str] = None,
    supplier_id: Optional[int] = None,
    only_available: bool = True,
) -> Query:
    """Build the catalog query, newest listings first."""
    query = db.query(Product).options(joinedload(Product.supplier))

    if only_available:
        query = query.filter(Product.available.is_(True))
    if supplier_id is not None:
        query = query.filter(Product.supplier_id == supplier_id)
    if type:
        query = query.filter(Product.type == type)
    if category:
        query = query.filter(Product.category == category)
    if city:
        query = query.filter(Product.city.ilike(city))
    if price_min is not None:
        query = query.filter(Product.price >= price_min)
    if price_max is not None:
        query = query.filter(Product.price <= price_max)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(like), Product.description.ilike(like)))

    return query.order_by(Product.created_at.desc(), Product.id.desc())


def adjust_quantity(db: Session, product_id: int, delta: int, require_available: bool = False) -> bool:
    """Atomically add ``delta`` to a product's quantity.

    A single conditional UPDATE: the row only changes if the result stays
    non-negative (and, when asked, the listing is available). Returns False
    when no row matched. Does not commit.
    """
    conditions = [Product.id == product_id, Product.quantity + delta >= 0]
    if require_available:
        conditions.append(Product.available.is_(True))

    result = db.execute(
        update(Product)
        .where(*conditions)
        .values(quantity=Product.quantity + delta)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def set_availability(db: Session, product: Product, available: bool) -> Product:
    product.available = available
    db.commit()
    db.refresh(product)
    return product


def create_product(db: Session, supplier: User, payload: ProductCreate) -> Product:
    data = payload.model_dump(exclude={"location"})
    location = payload.location
    product = Product(
        supplier_id=supplier.id,
        city=location.city if location and location.city else supplier.city,
        district=location.district if location and location.district else supplier.district,
        **data,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("Product %s created by supplier %s", product.id, supplier.id)
    return product


def update_product(db: Session, product: Product, payload: ProductUpdate) -> Product:
    data = payload.model_dump(exclude_unset=True, exclude={"location"})
    for key, value in data.items():
        setattr(product, key, value)
    if payload.location is not None:
        product.city = payload.location.city
        product.district = payload.location.district
    if product.category not in CATEGORIES[ProductType(product.type)]:
        db.rollback()
        raise ValidationError(f"Category '{product.category}' does not belong to '{product.type}'")
    db.commit()
    db.refresh(product)
    return product


def delete_product(db: Session, product: Product) -> None:
    # Order lines keep their name/price snapshot; only the reference goes
    db.query(OrderItem).filter(OrderItem.product_id == product.id).update(
        {OrderItem.product_id: None}, synchronize_session=False
    )
    db.delete(product)
    db.commit()
