"""
Complete transfers over endpoints that may move fewer bytes than asked for.

Pipes & FIFOs are allowed to return short reads/writes, so every transfer loops
on the remaining region until it is done. A single call returning zero (or less)
means the peer is gone: the transfer fails immediately & whatever was moved so
far is discarded, never delivered.
"""

from typing import Protocol

from loguru import logger

from handoff.shared.errors import IoBrokenError
from handoff.shared.ipc.wire import HEADER_SIZE, WireCodec
from handoff.shared.types.message import Message


class ByteSink(Protocol):
    def write(self, data: memoryview) -> int: ...


class ByteSource(Protocol):
    def read(self, size: int) -> bytes: ...


def write_exact(sink: ByteSink, data: bytes) -> None:
    view = memoryview(data)
    total = len(view)
    sent = 0
    while sent < total:
        written = sink.write(view[sent:])
        if written <= 0:
            raise IoBrokenError(
                f"Write side broke after {sent} of {total} bytes (call returned {written})"
            )
        sent += written


def read_exact(source: ByteSource, size: int) -> bytes:
    buffer = bytearray()
    while len(buffer) < size:
        chunk = source.read(size - len(buffer))
        if not chunk:
            raise IoBrokenError(
                f"End of stream after {len(buffer)} of {size} bytes"
            )
        buffer.extend(chunk)
    return bytes(buffer)


class ReliableChannel:
    def __init__(self, codec: WireCodec):
        self._codec = codec

    @property
    def codec(self) -> WireCodec:
        return self._codec

    def send(self, sink: ByteSink, message: Message) -> None:
        # encoding validates the count, so an invalid message never reaches the sink
        data = self._codec.encode(message)
        write_exact(sink, data)
        logger.debug(f"Sent {message.count} elements ({len(data)} bytes)")

    def receive(self, source: ByteSource) -> Message:
        count = self._codec.decode_header(read_exact(source, HEADER_SIZE))
        payload = read_exact(source, self._codec.payload_size(count))
        logger.debug(f"Received {count} elements")
        return self._codec.decode_payload(payload, count)
