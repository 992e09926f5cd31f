"""
base.py — Shared Pydantic building blocks.

The web client speaks camelCase (verificationCount, hasVerified, ...)
while MongoDB documents and Python code use snake_case. ApiModel maps
between the two: responses are serialised by alias, requests accept
either spelling.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Location(ApiModel):
    """A point on the map with a human-readable address."""
    address: str = Field(min_length=1)
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class OptionalAddressLocation(ApiModel):
    """SOS locations come straight from the device GPS; address may be unknown."""
    address: Optional[str] = None
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class MessageResponse(ApiModel):
    message: str


Role = Literal["citizen", "admin"]
