"""Shared base for API response schemas."""
from datetime import date, datetime, UTC
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, model_serializer


def to_utc_iso(moment: datetime) -> str:
    """ISO 8601 in UTC with a ``Z`` suffix; naive values (SQLite) are read as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat().replace("+00:00", "Z")


def to_wire(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_utc_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [to_wire(item) for item in value]
    if isinstance(value, dict):
        return {key: to_wire(item) for key, item in value.items()}
    return value


class BaseSchema(BaseModel):
    """
    Response base built from ORM rows.

    Ledger timestamps go out in UTC and account, match and request ids as
    plain strings, whichever mode the model is dumped in. Coin amounts are
    integers and pass through untouched.
    """

    model_config = ConfigDict(from_attributes=True)

    @model_serializer(mode="wrap")
    def _to_wire(self, handler):
        data = handler(self)
        for key, value in data.items():
            # json mode has already stringified scalars, so read the field itself
            raw = getattr(self, key, None)
            data[key] = to_wire(raw if isinstance(raw, (datetime, date, UUID)) else value)
        return data
