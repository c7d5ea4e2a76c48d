"""Helpers for string ids that reference Mongo documents."""
from typing import Iterable, Optional

from beanie import PydanticObjectId
from bson.errors import InvalidId


def to_object_id(value: str | None) -> Optional[PydanticObjectId]:
    """Parse an id string; malformed ids resolve to ``None``."""
    if not value:
        return None
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError, ValueError):
        return None


def to_object_ids(values: Iterable[str]) -> list[PydanticObjectId]:
    return [oid for oid in (to_object_id(v) for v in values) if oid is not None]
