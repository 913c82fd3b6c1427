"""Converts Python values into storage parameter values.

Timestamps are stored as fixed-width UTC ISO-8601 text so that string
comparison in SQL matches chronological order.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class ValueEncoder:
    """Encodes timestamps, identifiers and flags for parameterized queries."""

    def convert(self, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, datetime):
            return self.encode_timestamp(value)
        if isinstance(value, Enum):
            return self.convert(value.value)
        if isinstance(value, (int, float, str)):
            return value
        raise TypeError(f"Cannot encode value of type {type(value).__name__}")

    def convert_all(self, values: tuple[Any, ...] | list[Any]) -> tuple[Any, ...]:
        return tuple(self.convert(v) for v in values)

    @staticmethod
    def encode_timestamp(value: datetime) -> str:
        # Naive datetimes are taken to be UTC already
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(TIMESTAMP_FORMAT)

    @staticmethod
    def decode_timestamp(text: str) -> datetime:
        return datetime.strptime(text, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


encoder = ValueEncoder()
