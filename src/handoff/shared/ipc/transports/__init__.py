from handoff.shared.ipc.transports.anonymous_pipe import AnonymousPipeTransport
from handoff.shared.ipc.transports.base import OWNER_ROLE, NamedResource, Transport
from handoff.shared.ipc.transports.named_fifo import NamedFifoTransport
from handoff.shared.ipc.transports.shared_memory import SharedMemoryTransport
from handoff.shared.types.common import TransportKind
from handoff.shared.types.settings import HandoffSettings


def make_transport(settings: HandoffSettings) -> Transport:
    buffer_bytes = settings.transport.buffer_bytes
    match settings.transport.kind:
        case TransportKind.PIPE:
            return AnonymousPipeTransport(buffer_bytes)
        case TransportKind.FIFO:
            return NamedFifoTransport(
                settings.fifo.path, settings.fifo.mode, buffer_bytes=buffer_bytes
            )
        case TransportKind.SHM:
            return SharedMemoryTransport(settings.shm.name, buffer_bytes=buffer_bytes)


__all__ = [
    "OWNER_ROLE",
    "AnonymousPipeTransport",
    "NamedFifoTransport",
    "NamedResource",
    "SharedMemoryTransport",
    "Transport",
    "make_transport",
]
