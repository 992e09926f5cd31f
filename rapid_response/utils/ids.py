"""ObjectId parsing for path parameters."""

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException


def parse_object_id(value: str, label: str = "resource") -> ObjectId:
    """Return *value* as an ObjectId, or raise 422 naming *label* in the message."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=422, detail=f"Invalid {label} ID format")
