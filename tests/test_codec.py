import struct

import pytest

from sigionet.codec import FloatSamplesCodec, LengthPrefixFraming, TextCodec, get_codec
from sigionet.errors import FatalIOError


def test_text_codec_terminator():
    assert TextCodec().encode("hola") == b"hola\0"
    assert TextCodec(null_terminated=False).encode("hola") == b"hola"
    assert TextCodec().decode(b"hola\0resto") == "hola"
    assert TextCodec().decode(b"sin fin") == "sin fin"


def test_float_samples():
    codec = FloatSamplesCodec()
    data = codec.encode([0.5, 1.25])
    assert len(data) == 8
    assert codec.decode(data + b"\x01") == [0.5, 1.25]
    samples = codec.random_samples(1000)
    assert len(samples) == 250
    assert all(0.0 <= value < 1.0 for value in samples)


def test_get_codec_by_name():
    assert isinstance(get_codec("text"), TextCodec)
    assert isinstance(get_codec("floats"), FloatSamplesCodec)


def test_length_prefix_frame():
    framing = LengthPrefixFraming()
    assert framing.frame(b"abc") == struct.pack("!I", 3) + b"abc"
    assert framing.unframe(struct.pack("!I", 0)) == b""


@pytest.mark.parametrize("data", [b"\x00\x00", struct.pack("!I", 4) + b"abc", struct.pack("!I", 2) + b"abc"])
def test_length_prefix_rejects_bad_frames(data):
    with pytest.raises(FatalIOError):
        LengthPrefixFraming().unframe(data)
