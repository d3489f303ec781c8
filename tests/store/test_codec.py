"""Tests for value codecs."""

import pytest
from pydantic import BaseModel

from tablekv.core.errors import EncodingError
from tablekv.store.codec import BytesCodec, JSONCodec, ModelCodec


class Item(BaseModel):
    name: str
    tags: list[str] = []


# ━━━ JSON ━━━


def test_json_encodes_to_text():
    assert JSONCodec().encode({"a": [1, 2]}) == '{"a": [1, 2]}'


def test_json_decodes_text_and_bytes():
    codec = JSONCodec()
    assert codec.decode('"hello"') == "hello"
    assert codec.decode(b"[1, 2]") == [1, 2]


def test_json_encode_failure():
    with pytest.raises(EncodingError) as exc:
        JSONCodec().encode(object())
    assert isinstance(exc.value.__cause__, TypeError)


def test_json_decode_failure():
    with pytest.raises(EncodingError):
        JSONCodec().decode("{nope")


# ━━━ Model ━━━


def test_model_codec():
    codec = ModelCodec(Item)
    data = codec.encode(Item(name="lamp", tags=["home"]))
    decoded = codec.decode(data)
    assert decoded == Item(name="lamp", tags=["home"])


def test_model_codec_rejects_other_types():
    with pytest.raises(EncodingError):
        ModelCodec(Item).encode({"name": "lamp"})


def test_model_codec_invalid_document():
    with pytest.raises(EncodingError):
        ModelCodec(Item).decode('{"tags": []}')


# ━━━ Bytes ━━━


def test_bytes_codec_passthrough():
    codec = BytesCodec()
    assert codec.encode(b"\x00\x01") == b"\x00\x01"
    assert codec.encode(bytearray(b"ab")) == b"ab"
    assert codec.decode(b"\x00\x01") == b"\x00\x01"
    assert codec.decode("text") == b"text"


def test_bytes_codec_rejects_text():
    with pytest.raises(EncodingError):
        BytesCodec().encode("not bytes")
