import os
import threading
from multiprocessing.shared_memory import SharedMemory
from pathlib import Path

import pytest

from handoff.shared.errors import (
    HandleInvalidError,
    IoBrokenError,
    MalformedLengthError,
    ResourceExistsError,
)
from handoff.shared.ipc.transports import (
    AnonymousPipeTransport,
    NamedFifoTransport,
    SharedMemoryTransport,
    make_transport,
)
from handoff.shared.ipc.transports.endpoints import Endpoint, EndpointState, FdEndpoint
from handoff.shared.ipc.transports.named_fifo import ensure_fifo_exists
from handoff.shared.types.common import Direction, Role, TransportKind
from handoff.shared.types.message import Message
from handoff.shared.types.settings import HandoffSettings, TransportSettings

MESSAGE = Message(payload=(10, 20, 30))


def _produce(transport: NamedFifoTransport, message: Message, errors: list[Exception]):
    try:
        endpoint = transport.open(Role.PRODUCER)
        transport.channel().send(endpoint, message)
    except Exception as e:
        errors.append(e)
    finally:
        transport.release(Role.PRODUCER)


def test_capacity_per_transport(fifo_path: Path, shm_name: str):
    assert AnonymousPipeTransport().capacity_limit == 256
    assert NamedFifoTransport(fifo_path).capacity_limit == 256
    assert SharedMemoryTransport(shm_name).capacity_limit == 255


def test_make_transport():
    settings = HandoffSettings(transport=TransportSettings(kind=TransportKind.FIFO))
    transport = make_transport(settings)
    assert isinstance(transport, NamedFifoTransport)
    assert transport.path == "/tmp/my_named_pipe"

    settings = HandoffSettings(transport=TransportSettings(kind=TransportKind.SHM, buffer_bytes=64))
    transport = make_transport(settings)
    assert isinstance(transport, SharedMemoryTransport)
    assert transport.name == "my_shared_memory"
    assert transport.capacity_limit == 15


def test_pipe_reader_sees_end_of_stream():
    transport = AnonymousPipeTransport()
    transport.setup()
    endpoint = transport.open(Role.CONSUMER)
    assert endpoint.direction is Direction.READ_ONLY

    # the consumer dropped the only write end
    with pytest.raises(IoBrokenError):
        transport.channel().receive(endpoint)

    transport.release(Role.CONSUMER)
    transport.release(Role.CONSUMER)
    assert endpoint.state is EndpointState.CLOSED


def test_endpoint_misuse():
    transport = AnonymousPipeTransport()
    transport.setup()
    endpoint = transport.open(Role.CONSUMER)

    with pytest.raises(HandleInvalidError):
        endpoint.write(memoryview(b"x"))

    transport.release(Role.CONSUMER)
    with pytest.raises(HandleInvalidError):
        endpoint.read(4)


def test_fd_errors_are_broken_transfers(tmp_path: Path):
    # reading a directory fails with EISDIR
    endpoint = FdEndpoint(os.open(tmp_path, os.O_RDONLY), Direction.READ_ONLY, label="dir")
    with pytest.raises(IoBrokenError):
        endpoint.read(4)
    endpoint.close()


@pytest.mark.skipif(not os.path.exists("/dev/full"), reason="needs /dev/full")
def test_fd_write_errors_are_broken_transfers():
    endpoint = FdEndpoint(os.open("/dev/full", os.O_WRONLY), Direction.WRITE_ONLY, label="full")
    with pytest.raises(IoBrokenError):
        endpoint.write(memoryview(b"x"))
    endpoint.close()


def test_fifo_writer_blocks_until_reader(fifo_path: Path):
    consumer = NamedFifoTransport(fifo_path)
    consumer.setup()
    assert fifo_path.exists()
    assert consumer.resource.created

    errors: list[Exception] = []
    producer = threading.Thread(
        target=_produce, args=(NamedFifoTransport(fifo_path), MESSAGE, errors), daemon=True
    )
    producer.start()

    # no reader yet, so the writer is still stuck in open()
    producer.join(0.2)
    assert producer.is_alive()

    endpoint = consumer.open(Role.CONSUMER)
    assert consumer.channel().receive(endpoint) == MESSAGE
    producer.join(5)
    assert not producer.is_alive()
    assert errors == []

    consumer.release(Role.CONSUMER)
    assert not fifo_path.exists()


def test_fifo_reader_blocks_until_writer(fifo_path: Path):
    consumer = NamedFifoTransport(fifo_path)
    consumer.setup()

    opened: list[Endpoint] = []
    reader = threading.Thread(target=lambda: opened.append(consumer.open(Role.CONSUMER)), daemon=True)
    reader.start()

    # no writer yet, so the reader is still stuck in open()
    reader.join(0.2)
    assert reader.is_alive()
    assert opened == []

    producer = NamedFifoTransport(fifo_path)
    writer = producer.open(Role.PRODUCER)
    reader.join(5)
    assert not reader.is_alive()

    producer.channel().send(writer, MESSAGE)
    producer.release(Role.PRODUCER)
    assert consumer.channel().receive(opened[0]) == MESSAGE

    consumer.release(Role.CONSUMER)
    assert not fifo_path.exists()


def test_fifo_unlink_keeps_open_handles_working(fifo_path: Path):
    consumer = NamedFifoTransport(fifo_path)
    consumer.setup()
    producer = NamedFifoTransport(fifo_path)

    opened: list[object] = []
    opener = threading.Thread(target=lambda: opened.append(producer.open(Role.PRODUCER)), daemon=True)
    opener.start()
    reader = consumer.open(Role.CONSUMER)
    opener.join(5)
    (writer,) = opened

    os.unlink(fifo_path)
    assert not fifo_path.exists()

    producer.channel().send(writer, MESSAGE)  # pyright: ignore[reportArgumentType]
    producer.release(Role.PRODUCER)
    assert consumer.channel().receive(reader) == MESSAGE

    # the path is already gone; release only logs that
    consumer.release(Role.CONSUMER)


def test_fifo_only_owner_unlinks(fifo_path: Path):
    transport = NamedFifoTransport(fifo_path)
    transport.setup()

    transport.release(Role.PRODUCER)
    assert fifo_path.exists()

    transport.release(Role.CONSUMER)
    assert not fifo_path.exists()
    assert transport.resource.unlinked


def test_fifo_existing_is_reused_not_removed(fifo_path: Path):
    os.mkfifo(fifo_path)
    assert not ensure_fifo_exists(fifo_path)

    transport = NamedFifoTransport(fifo_path)
    transport.setup()
    assert not transport.resource.created

    transport.release(Role.CONSUMER)
    assert fifo_path.exists()


def test_fifo_path_taken_by_regular_file(fifo_path: Path):
    fifo_path.write_text("not a fifo")

    with pytest.raises(ResourceExistsError):
        NamedFifoTransport(fifo_path).setup()
    assert fifo_path.read_text() == "not a fifo"


def test_fifo_producer_without_fifo(fifo_path: Path):
    with pytest.raises(HandleInvalidError):
        NamedFifoTransport(fifo_path).open(Role.PRODUCER)


def test_fifo_creates_parent_directories(tmp_path: Path):
    path = tmp_path / "a" / "b" / "handoff.fifo"
    assert ensure_fifo_exists(path, 0o600)
    assert oct(path.stat().st_mode & 0o777) == oct(0o600)


def test_shm_round_trip(shm_name: str):
    consumer = SharedMemoryTransport(shm_name)
    consumer.setup()
    assert consumer.resource.created
    reader = consumer.open(Role.CONSUMER)

    producer = SharedMemoryTransport(shm_name)
    writer = producer.open(Role.PRODUCER)
    producer.channel().send(writer, Message(payload=(42,)))
    producer.release(Role.PRODUCER)

    # the producer never removes the segment
    SharedMemory(shm_name.lstrip("/"), track=False).close()

    assert consumer.channel().receive(reader) == Message(payload=(42,))
    consumer.release(Role.CONSUMER)

    with pytest.raises(FileNotFoundError):
        SharedMemory(shm_name.lstrip("/"), track=False)


def test_shm_capacity(shm_name: str):
    transport = SharedMemoryTransport(shm_name)
    transport.setup()
    endpoint = transport.open(Role.CONSUMER)

    with pytest.raises(MalformedLengthError):
        transport.channel().send(endpoint, Message(payload=tuple(range(256))))

    transport.channel().send(endpoint, Message(payload=tuple(range(255))))
    assert endpoint.offset == 1024  # pyright: ignore[reportAttributeAccessIssue]

    transport.release(Role.CONSUMER)


def test_shm_region_bounds(shm_name: str):
    transport = SharedMemoryTransport(shm_name, buffer_bytes=16)
    transport.setup()
    endpoint = transport.open(Role.CONSUMER)

    assert endpoint.write(memoryview(b"x" * 12)) == 12
    assert endpoint.write(memoryview(b"y" * 12)) == 4
    assert endpoint.write(memoryview(b"z")) == 0

    transport.release(Role.CONSUMER)
    with pytest.raises(HandleInvalidError):
        endpoint.write(memoryview(b"x"))


def test_shm_existing_segment_not_removed(shm_name: str):
    existing = SharedMemory(shm_name.lstrip("/"), create=True, size=1024, track=False)
    try:
        transport = SharedMemoryTransport(shm_name)
        transport.setup()
        assert not transport.resource.created

        transport.release(Role.CONSUMER)
        SharedMemory(shm_name.lstrip("/"), track=False).close()
    finally:
        existing.close()


def test_shm_producer_without_segment(shm_name: str):
    with pytest.raises(HandleInvalidError):
        SharedMemoryTransport(shm_name).open(Role.PRODUCER)


def test_shm_consumer_before_setup(shm_name: str):
    with pytest.raises(HandleInvalidError):
        SharedMemoryTransport(shm_name).open(Role.CONSUMER)
