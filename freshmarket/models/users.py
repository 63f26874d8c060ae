# freshmarket/models/users.py
import enum

from sqlalchemy import Column, Integer, String, DateTime, func
from freshmarket.database import Base


class Role(str, enum.Enum):
    BUYER = "acheteur"
    SUPPLIER = "fournisseur"


# Represents a marketplace account: a buyer or a supplier
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False)

    city = Column(String, nullable=True)
    district = Column(String, nullable=True)

    # Supplier only: fruits or legumes
    product_type = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def is_supplier(self) -> bool:
        return self.role == Role.SUPPLIER.value
