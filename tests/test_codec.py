from typing import Tuple

import pytest
from pydantic import BaseModel

from peernet.errors import DecodeError
from peernet.transport import JsonCodec


class Packet(BaseModel):
    msg: str
    timestamp: int


def test_string_identity_is_a_json_string():
    codec = JsonCodec(str)

    assert codec.encode("192.168.1.4:4711") == b'"192.168.1.4:4711"'
    assert codec.decode(b'"192.168.1.4:4711"') == "192.168.1.4:4711"


def test_models_are_decoded_to_instances():
    codec = JsonCodec(Packet)

    packet = codec.decode(b'{"msg": "hi", "timestamp": 1700000000}')

    assert packet == Packet(msg="hi", timestamp=1700000000)


def test_tuples_decode_hashable():
    codec = JsonCodec(Tuple[str, int])

    value = codec.decode(b'["10.0.0.1", 3]')

    assert value == ("10.0.0.1", 3)
    assert hash(value)


@pytest.mark.parametrize("payload", [
    b'\xff\xfe',
    b'',
    b'{"unterminated": ',
    b'42',
    b'null',
])
def test_invalid_payloads_raise_decode_error(payload):
    with pytest.raises(DecodeError):
        JsonCodec(str).decode(payload)


def test_model_with_missing_field_raises_decode_error():
    with pytest.raises(DecodeError, match="Packet"):
        JsonCodec(Packet).decode(b'{"msg": "hi"}')
