"""
Fixed-width wire format for a `Message`.

    +-----------+-----------+-----------+-----+
    | count u32 | value i32 | value i32 | ... |
    +-----------+-----------+-----------+-----+

Host byte order, standard sizes, no padding (struct's `=` prefix). The codec
only defines the shape of the bytes; pulling them off a transport is the
channel's job.
"""

import struct

from handoff.shared.constants import INT32_SIZE
from handoff.shared.errors import CapacityExceededError, MalformedLengthError
from handoff.shared.types.message import Message

HEADER = struct.Struct("=I")
HEADER_SIZE = HEADER.size


def capacity_limit_for(buffer_bytes: int, reserved_header_slots: int = 0) -> int:
    return buffer_bytes // INT32_SIZE - reserved_header_slots


class WireCodec:
    """
    Encodes and decodes messages, and is the single place where the
    `1 <= count <= capacity_limit` bound is enforced.
    """

    def __init__(self, capacity_limit: int):
        if capacity_limit < 1:
            raise CapacityExceededError(
                f"A transport must fit at least one element, capacity limit is {capacity_limit}"
            )
        self._capacity_limit = capacity_limit

    @classmethod
    def for_buffer(cls, buffer_bytes: int, reserved_header_slots: int = 0) -> "WireCodec":
        return cls(capacity_limit_for(buffer_bytes, reserved_header_slots))

    @property
    def capacity_limit(self) -> int:
        return self._capacity_limit

    def validate_count(self, count: int) -> int:
        if not 1 <= count <= self._capacity_limit:
            raise MalformedLengthError(
                f"Element count must satisfy 1 <= count <= {self._capacity_limit}, got {count}"
            )
        return count

    @staticmethod
    def payload_size(count: int) -> int:
        return count * INT32_SIZE

    def encoded_size(self, count: int) -> int:
        return HEADER_SIZE + self.payload_size(self.validate_count(count))

    def encode(self, message: Message) -> bytes:
        count = self.validate_count(message.count)
        return HEADER.pack(count) + struct.pack(f"={count}i", *message.payload)

    def decode_header(self, data: bytes) -> int:
        if len(data) != HEADER_SIZE:
            raise MalformedLengthError(
                f"Header must be {HEADER_SIZE} bytes, got {len(data)}"
            )
        (count,) = HEADER.unpack(data)
        return self.validate_count(count)

    def decode_payload(self, data: bytes, count: int) -> Message:
        if len(data) != self.payload_size(count):
            raise MalformedLengthError(
                f"Payload of {count} elements must be {self.payload_size(count)} bytes, got {len(data)}"
            )
        return Message(payload=struct.unpack(f"={count}i", data))

    def decode(self, data: bytes) -> Message:
        """Decode a complete encoded message held in one buffer."""
        count = self.decode_header(data[:HEADER_SIZE])
        return self.decode_payload(data[HEADER_SIZE:], count)
