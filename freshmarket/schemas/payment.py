from typing import Optional

from pydantic import Field

from freshmarket.models.order import PaymentMethod
from freshmarket.schemas.base import WireModel


class PaymentInitPayload(WireModel):
    method: PaymentMethod = Field(alias="modePaiement")
    # Falls back to the delivery contact phone
    phone: Optional[str] = Field(default=None, alias="telephone")


class PaymentInitiationResponse(WireModel):
    success: bool = True
    message: str
    order_id: int = Field(alias="orderId")
    transaction_id: str = Field(alias="transactionId")
    payment_url: Optional[str] = Field(default=None, alias="paymentUrl")


# Result of a buyer poll; status "unknown" + retry when the provider timed out
class PaymentStatusResponse(WireModel):
    success: bool = True
    transaction_id: str = Field(alias="transactionId")
    status: str
    order_id: Optional[int] = Field(default=None, alias="orderId")
    payment_status: Optional[str] = Field(default=None, alias="statutPaiement")
    order_status: Optional[str] = Field(default=None, alias="statutCommande")
    retry: bool = False
