# freshmarket/routes/products.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from freshmarket.database import get_db
from freshmarket.models.product import Product
from freshmarket.models.users import User, Role
from freshmarket.schemas.base import Location, MessageResponse
from freshmarket.schemas.product import (
    ProductCreate, ProductUpdate, AvailabilityPatch, ProductOut, ProductListPage,
)
from freshmarket.schemas.user import PartyOut
from freshmarket.services import catalog
from freshmarket.utils.audit import write_log, client_ip
from freshmarket.utils.tokenJWT import role_required

router = APIRouter(prefix="/products", tags=["Products"])

supplier_only = role_required(Role.SUPPLIER)


def _product_to_out(product: Product) -> ProductOut:
    supplier = None
    if product.supplier is not None:
        supplier = PartyOut(id=product.supplier.id, name=product.supplier.name, phone=product.supplier.phone)
    return ProductOut(
        id=product.id, supplier_id=product.supplier_id, supplier=supplier,
        name=product.name, category=product.category, type=product.type,
        description=product.description, price=product.price, unit=product.unit,
        quantity=product.quantity, available=product.available, photos=product.photos or [],
        location=Location(city=product.city, district=product.district),
        created_at=product.created_at,
    )


def _page(query, page: int, page_size: int) -> dict:
    total = query.count()
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    return {"items": [_product_to_out(p) for p in rows], "total": total, "page": page, "page_size": page_size}


# Public catalog: available listings only
@router.get("", response_model=ProductListPage)
def list_products(
    type: Optional[str] = Query(None),
    categorie: Optional[str] = Query(None),
    ville: Optional[str] = Query(None),
    prixMin: Optional[int] = Query(None, ge=0),
    prixMax: Optional[int] = Query(None, ge=0),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    query = catalog.list_products(
        db, type=type, category=categorie, city=ville,
        price_min=prixMin, price_max=prixMax, search=search,
    )
    return _page(query, page, page_size)


# The connected supplier's own listings, including unavailable ones
@router.get("/mes-produits", response_model=ProductListPage)
def my_products(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(supplier_only),
):
    query = catalog.list_products(db, supplier_id=current_user.id, only_available=False)
    return _page(query, page, page_size)


# A supplier's public listings
@router.get("/fournisseur/{supplier_id}", response_model=ProductListPage)
def supplier_products(
    supplier_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return _page(catalog.list_products(db, supplier_id=supplier_id), page, page_size)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return _product_to_out(catalog.get_product(db, product_id))


@router.post("", response_model=ProductOut, status_code=201)
def create_product(
    payload: ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(supplier_only),
):
    product = catalog.create_product(db, current_user, payload)
    write_log(db, user_id=current_user.id, action="PRODUCT_CREATE", resource="products", resource_id=product.id,
              ip=client_ip(request), meta={"product_id": product.id, "name": product.name})
    return _product_to_out(product)


@router.put("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int,
    payload: ProductUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(supplier_only),
):
    product = catalog.get_owned_product(db, product_id, current_user)
    product = catalog.update_product(db, product, payload)
    write_log(db, user_id=current_user.id, action="PRODUCT_UPDATE", resource="products", resource_id=product.id,
              ip=client_ip(request), meta={"product_id": product.id,
                                           "fields": sorted(payload.model_dump(exclude_unset=True))})
    return _product_to_out(product)


@router.delete("/{product_id}", response_model=MessageResponse)
def delete_product(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(supplier_only),
):
    product = catalog.get_owned_product(db, product_id, current_user)
    catalog.delete_product(db, product)
    write_log(db, user_id=current_user.id, action="PRODUCT_DELETE", resource="products", resource_id=product_id,
              ip=client_ip(request), meta={"product_id": product_id})
    return MessageResponse(message="Product deleted")


@router.patch("/{product_id}/disponibilite", response_model=ProductOut)
def set_availability(
    product_id: int,
    payload: AvailabilityPatch,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(supplier_only),
):
    product = catalog.get_owned_product(db, product_id, current_user)
    product = catalog.set_availability(db, product, payload.available)
    write_log(db, user_id=current_user.id, action="PRODUCT_AVAILABILITY", resource="products", resource_id=product.id,
              ip=client_ip(request), meta={"product_id": product.id, "available": product.available})
    return _product_to_out(product)
