from datetime import datetime
from typing import List, Optional

from pydantic import Field

from freshmarket.models.order import OrderStatus
from freshmarket.schemas.base import WireModel
from freshmarket.schemas.user import PartyOut


# One requested cart line
class OrderLineIn(WireModel):
    product_id: int = Field(alias="productId")
    quantity: int = Field(alias="quantite", gt=0)


class DeliveryAddress(WireModel):
    city: Optional[str] = Field(default=None, alias="ville")
    district: Optional[str] = Field(default=None, alias="quartier")
    instructions: Optional[str] = None
    phone: Optional[str] = Field(default=None, alias="telephone")


# Order creation; an empty cart is rejected by the service, not here
class OrderCreatePayload(WireModel):
    products: List[OrderLineIn] = Field(default_factory=list, alias="produits")
    delivery_address: DeliveryAddress = Field(default_factory=DeliveryAddress, alias="adresseLivraison")


class OrderItemOut(WireModel):
    product_id: Optional[int] = Field(default=None, alias="productId")
    name: str = Field(alias="nom")
    unit_price: int = Field(alias="prixUnitaire")
    quantity: int = Field(alias="quantite")
    line_total: int = Field(alias="total")


class PaymentOut(WireModel):
    method: Optional[str] = Field(default=None, alias="mode")
    reference: Optional[str] = None
    status: str = Field(alias="statut")
    amount: Optional[int] = Field(default=None, alias="montant")
    transaction_id: Optional[str] = Field(default=None, alias="transactionId")
    paid_at: Optional[datetime] = Field(default=None, alias="datePaiement")


class StatusHistoryOut(WireModel):
    status: str = Field(alias="statut")
    created_at: datetime = Field(alias="date")
    comment: Optional[str] = Field(default=None, alias="commentaire")


class OrderResponse(WireModel):
    id: int
    buyer: PartyOut = Field(alias="acheteur")
    supplier: PartyOut = Field(alias="fournisseur")
    items: List[OrderItemOut] = Field(alias="produits")
    subtotal: int = Field(alias="sousTotal")
    delivery_fee: int = Field(alias="fraisLivraison")
    total: int
    delivery_address: DeliveryAddress = Field(alias="adresseLivraison")
    status: str = Field(alias="statut")
    payment: PaymentOut = Field(alias="paiement")
    history: List[StatusHistoryOut] = Field(alias="historiqueStatuts")
    buyer_rating: Optional[int] = Field(default=None, alias="noteAcheteur")
    buyer_comment: Optional[str] = Field(default=None, alias="commentaireAcheteur")
    created_at: datetime = Field(alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")


# Schema for paginated order lists
class OrdersPage(WireModel):
    items: List[OrderResponse]
    total: int
    page: int
    page_size: int


# Supplier status update
class OrderStatusPatch(WireModel):
    status: OrderStatus = Field(alias="statut")
    comment: Optional[str] = Field(default=None, alias="commentaire")


class OrderRatingPayload(WireModel):
    rating: int = Field(alias="note", ge=1, le=5)
    comment: Optional[str] = Field(default=None, alias="commentaire")
