# freshmarket/models/product.py
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from freshmarket.database import Base


class ProductType(str, enum.Enum):
    FRUITS = "fruits"
    LEGUMES = "legumes"


class Unit(str, enum.Enum):
    KG = "kg"
    PIECE = "pièce"
    TAS = "tas"
    BOTTE = "botte"


CATEGORIES = {
    ProductType.FRUITS: ("ananas", "mangue", "banane", "canne", "orange", "papaye"),
    ProductType.LEGUMES: ("tomate", "oignon", "gombo", "aubergine", "piment", "concombre"),
}
ALL_CATEGORIES = tuple(c for cats in CATEGORIES.values() for c in cats)


def _utcnow():
    return datetime.now(timezone.utc)


# A produce listing owned by exactly one supplier.
# quantity is only decremented by order placement and restored by cancellation;
# the check constraint is the last line of defence against overselling.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    supplier_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False, index=True)
    description = Column(String, nullable=True)

    price = Column(Integer, CheckConstraint("price >= 0"), nullable=False)
    unit = Column(String, nullable=False, default=Unit.KG.value)
    quantity = Column(Integer, CheckConstraint("quantity >= 0"), nullable=False)
    available = Column(Boolean, nullable=False, default=True)

    photos = Column(JSON, nullable=False, default=list)

    city = Column(String, nullable=True, index=True)
    district = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    supplier = relationship("User")
