from typing import Literal, Optional

from pydantic import EmailStr, Field

from freshmarket.schemas.base import WireModel, Location


# Registration request
class UserCreate(WireModel):
    name: str = Field(alias="nom", min_length=1)
    phone: str = Field(alias="telephone", min_length=6)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Literal["acheteur", "fournisseur"]
    location: Location = Field(default_factory=Location, alias="localisation")
    product_type: Optional[Literal["fruits", "legumes"]] = Field(default=None, alias="typeProduit")


class UserLogin(WireModel):
    email: EmailStr
    password: str


class UserResponse(WireModel):
    id: int
    name: str = Field(alias="nom")
    phone: str = Field(alias="telephone")
    email: EmailStr
    role: str
    location: Location = Field(alias="localisation")
    product_type: Optional[str] = Field(default=None, alias="typeProduit")


# Returned by register and login
class AuthResponse(WireModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse


# Brief identity embedded in orders and products
class PartyOut(WireModel):
    id: int
    name: str = Field(alias="nom")
    phone: Optional[str] = Field(default=None, alias="telephone")
