from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from freshmarket.models.product import ALL_CATEGORIES, CATEGORIES, ProductType
from freshmarket.schemas.base import WireModel, Location
from freshmarket.schemas.user import PartyOut

Category = Literal[ALL_CATEGORIES]
Kind = Literal["fruits", "legumes"]
UnitName = Literal["kg", "pièce", "tas", "botte"]

# Product columns a partial update may omit but never set to null
NOT_NULL_FIELDS = {"name", "category", "type", "price", "unit", "quantity", "photos", "available"}


def _check_category(category, kind):
    if category and kind and category not in CATEGORIES[ProductType(kind)]:
        raise ValueError(f"Category '{category}' does not belong to '{kind}'")


# Schema for creating a listing
class ProductCreate(WireModel):
    name: str = Field(alias="nom", min_length=1)
    category: Category = Field(alias="categorie")
    type: Kind
    description: Optional[str] = None
    price: int = Field(alias="prix", ge=0)
    unit: UnitName = Field(default="kg", alias="unite")
    quantity: int = Field(alias="quantite", ge=0)
    photos: List[str] = Field(default_factory=list)
    available: bool = Field(default=True, alias="disponible")
    # Defaults to the supplier's own location
    location: Optional[Location] = Field(default=None, alias="localisation")

    @model_validator(mode="after")
    def _category_matches_type(self):
        _check_category(self.category, self.type)
        return self


# Partial update - all fields optional
class ProductUpdate(WireModel):
    name: Optional[str] = Field(default=None, alias="nom", min_length=1)
    category: Optional[Category] = Field(default=None, alias="categorie")
    type: Optional[Kind] = None
    description: Optional[str] = None
    price: Optional[int] = Field(default=None, alias="prix", ge=0)
    unit: Optional[UnitName] = Field(default=None, alias="unite")
    quantity: Optional[int] = Field(default=None, alias="quantite", ge=0)
    photos: Optional[List[str]] = None
    available: Optional[bool] = Field(default=None, alias="disponible")
    location: Optional[Location] = Field(default=None, alias="localisation")

    @model_validator(mode="after")
    def _category_matches_type(self):
        _check_category(self.category, self.type)
        return self

    # Omitting a field keeps it; only description may be cleared with null
    @model_validator(mode="after")
    def _no_null_for_required_columns(self):
        cleared = sorted(f for f in self.model_fields_set if f in NOT_NULL_FIELDS and getattr(self, f) is None)
        if cleared:
            raise ValueError(f"These fields cannot be null: {', '.join(cleared)}")
        return self


class AvailabilityPatch(WireModel):
    available: bool = Field(alias="disponible")


class ProductOut(WireModel):
    id: int
    supplier_id: int = Field(alias="fournisseurId")
    supplier: Optional[PartyOut] = Field(default=None, alias="fournisseur")
    name: str = Field(alias="nom")
    category: str = Field(alias="categorie")
    type: str
    description: Optional[str] = None
    price: int = Field(alias="prix")
    unit: str = Field(alias="unite")
    quantity: int = Field(alias="quantite")
    available: bool = Field(alias="disponible")
    photos: List[str] = Field(default_factory=list)
    location: Location = Field(alias="localisation")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


# Paginated response for product listings
class ProductListPage(WireModel):
    items: List[ProductOut]
    total: int
    page: int
    page_size: int
