"""Payload encodings used by the exercises."""
from __future__ import annotations

import random
import struct
from typing import List, Sequence

from .errors import FatalIOError

FRAMING_MODES = ("legacy", "single", "length-prefix")

SAMPLE = struct.Struct("f")
LENGTH_PREFIX = struct.Struct("!I")


class TextCodec:
    """UTF-8 text, optionally terminated by a NUL byte like C strings."""

    name = "text"

    def __init__(self, null_terminated: bool = True) -> None:
        self.null_terminated = null_terminated

    def encode(self, text: str) -> bytes:
        data = text.encode("utf-8")
        if self.null_terminated:
            data += b"\0"
        return data

    def decode(self, data: bytes) -> str:
        data = data.split(b"\0", 1)[0]
        return data.decode("utf-8", errors="replace")


class FloatSamplesCodec:
    """Arrays of native 4-byte floats, sent without any header."""

    name = "floats"

    def encode(self, samples: Sequence[float]) -> bytes:
        return struct.pack(f"{len(samples)}f", *samples)

    def decode(self, data: bytes) -> List[float]:
        count = len(data) // SAMPLE.size
        return list(struct.unpack_from(f"{count}f", data))

    @staticmethod
    def random_samples(max_bytes: int) -> List[float]:
        return [random.random() for _ in range(max_bytes // SAMPLE.size)]


CODECS = {
    TextCodec.name: TextCodec,
    FloatSamplesCodec.name: FloatSamplesCodec,
}


def get_codec(name: str):
    return CODECS[name]()


class LengthPrefixFraming:
    """Explicit framing: a 4-byte big-endian length before each payload."""

    header_size = LENGTH_PREFIX.size

    def frame(self, payload: bytes) -> bytes:
        return LENGTH_PREFIX.pack(len(payload)) + payload

    def unframe(self, data: bytes) -> bytes:
        if len(data) < self.header_size:
            raise FatalIOError(f"frame of {len(data)} bytes is shorter than its header")
        (length,) = LENGTH_PREFIX.unpack_from(data)
        payload = data[self.header_size:]
        if len(payload) != length:
            raise FatalIOError(f"frame announces {length} bytes but carries {len(payload)}")
        return payload
