"""
Value codecs.

The store never looks inside a value. A codec turns the caller's
object into text/bytes on the way in and back on the way out.
Every failure surfaces as EncodingError with the cause chained.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from tablekv.core.errors import EncodingError

M = TypeVar("M", bound=BaseModel)


class Codec(ABC):
    """Encode/decode pair for stored values."""

    @abstractmethod
    def encode(self, value: Any) -> str | bytes: ...

    @abstractmethod
    def decode(self, data: str | bytes) -> Any: ...


class JSONCodec(Codec):
    """Plain JSON documents. The default."""

    def encode(self, value: Any) -> str:
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as e:
            raise EncodingError(f"Cannot encode {type(value).__name__}: {e}") from e

    def decode(self, data: str | bytes) -> Any:
        try:
            return json.loads(data)
        except (TypeError, ValueError) as e:
            raise EncodingError(f"Cannot decode stored value: {e}") from e


class ModelCodec(Codec, Generic[M]):
    """
    pydantic models stored as JSON.

    Each decode builds a fresh model instance.

    Usage:
        class Profile(BaseModel):
            name: str

        store = await Store.open(db, "profiles", codec=ModelCodec(Profile))
    """

    def __init__(self, model: type[M]) -> None:
        self.model = model

    def encode(self, value: Any) -> str:
        if not isinstance(value, self.model):
            raise EncodingError(
                f"Expected {self.model.__name__}, got {type(value).__name__}"
            )
        return value.model_dump_json()

    def decode(self, data: str | bytes) -> M:
        try:
            return self.model.model_validate_json(data)
        except ValidationError as e:
            raise EncodingError(
                f"Stored value is not a valid {self.model.__name__}: {e}"
            ) from e


class BytesCodec(Codec):
    """Raw bytes, stored untouched."""

    def encode(self, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        raise EncodingError(f"Expected bytes, got {type(value).__name__}")

    def decode(self, data: str | bytes) -> bytes:
        if isinstance(data, str):
            return data.encode("utf-8")
        return bytes(data)
