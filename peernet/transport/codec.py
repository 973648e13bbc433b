"""
Wire Codec

Design Decision: Datagram Encoding
==================================

Options Considered:
1. Raw bytes / str only - Trivial, but every caller invents its own format
2. pickle - Any Python object, but unsafe on an open broadcast port
3. JSON via pydantic - Self-describing, typed decoding, validation errors

Decision: JSON via pydantic TypeAdapter
- One datagram carries exactly one UTF-8 JSON value, no framing
- The adapter knows the expected type, so decoding yields a real
  str / int / tuple / BaseModel instead of loose dicts
- Foreign or corrupt datagrams surface as a single DecodeError
"""

from typing import Any, Generic, Type, TypeVar

from pydantic import TypeAdapter, ValidationError

from ..errors import DecodeError

T = TypeVar('T')


class JsonCodec(Generic[T]):
    """Encode and decode values of one type as JSON datagrams."""

    def __init__(self, type_: Type[T] = str):
        self.type_ = type_
        self._adapter = TypeAdapter(type_)

    def encode(self, value: T) -> bytes:
        """Serialize a value to UTF-8 JSON bytes."""
        return self._adapter.dump_json(value)

    def decode(self, data: bytes) -> T:
        """
        Deserialize one datagram.

        Raises:
            DecodeError: if the payload is not UTF-8 JSON of the expected type
        """
        try:
            text = data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise DecodeError(f"Datagram is not valid UTF-8: {e}") from e

        try:
            return self._adapter.validate_json(text)
        except ValidationError as e:
            raise DecodeError(
                f"Datagram is not a valid {self._type_name()}: "
                f"{e.error_count()} error(s)"
            ) from e

    def _type_name(self) -> str:
        return getattr(self.type_, '__name__', repr(self.type_))

    def __repr__(self) -> str:
        return f"JsonCodec({self._type_name()})"


def encode_value(value: Any) -> bytes:
    """Encode a value using a codec for its own runtime type."""
    return JsonCodec(type(value)).encode(value)
