from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# Accepts both the French wire names and the Python attribute names;
# responses are serialized with the French aliases
class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class Location(WireModel):
    city: Optional[str] = Field(default=None, alias="ville")
    district: Optional[str] = Field(default=None, alias="quartier")


class MessageResponse(WireModel):
    success: bool = True
    message: str
