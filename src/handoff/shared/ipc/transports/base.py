from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import ClassVar

from loguru import logger

from handoff.shared.constants import DEFAULT_BUFFER_BYTES
from handoff.shared.ipc.channel import ReliableChannel
from handoff.shared.ipc.transports.endpoints import Endpoint
from handoff.shared.ipc.wire import WireCodec
from handoff.shared.types.common import Role, TransportKind

# the creator of a named resource outlives its peer, so it is the one that removes it
OWNER_ROLE = Role.CONSUMER


@dataclass
class NamedResource:
    """
    A kernel object reachable by name (FIFO path, shared-memory name) whose
    lifetime is independent of any open handle on it.

    Only `owner` may unlink it, only if this session created it, and only once.
    """

    name: str
    owner: Role = OWNER_ROLE
    created: bool = False
    unlinked: bool = False

    def may_unlink(self, role: Role) -> bool:
        return role is self.owner and self.created and not self.unlinked

    def unlink(self, role: Role, remove: Callable[[str], None]) -> None:
        if not self.may_unlink(role):
            return
        # mark first: a failed removal is not retried
        self.unlinked = True
        best_effort(f"unlink {self.name}", lambda: remove(self.name))


def best_effort(what: str, step: Callable[[], None]) -> None:
    """Run a teardown step; failures are logged & never mask the session's outcome."""
    try:
        step()
    except OSError as e:
        logger.warning(f"Teardown step '{what}' failed: {e}")
    else:
        logger.debug(f"Teardown step '{what}' done")


class Transport(ABC):
    """
    A mechanism providing one write-capable and one read-capable endpoint
    between a producer & a consumer process.

    Usage, with the consumer being the process that created the transport:
      1. `setup()` in the creator, before the producer process is spawned
      2. `open(role)` in each process, after the split
      3. `release(role)` in each process on every exit path
    """

    kind: ClassVar[TransportKind]
    # int32 slots of the buffer that are not available to the payload
    reserved_header_slots: ClassVar[int] = 0
    # whether the consumer must wait for the producer to exit before reading
    requires_join_barrier: ClassVar[bool] = False

    def __init__(self, buffer_bytes: int = DEFAULT_BUFFER_BYTES):
        self.buffer_bytes = buffer_bytes
        self._codec = WireCodec.for_buffer(buffer_bytes, self.reserved_header_slots)

    @property
    def codec(self) -> WireCodec:
        return self._codec

    @property
    def capacity_limit(self) -> int:
        return self._codec.capacity_limit

    def channel(self) -> ReliableChannel:
        return ReliableChannel(self._codec)

    @abstractmethod
    def setup(self) -> None:
        """Acquire the transport. Partial acquisitions are undone by `release`."""

    @abstractmethod
    def open(self, role: Role) -> Endpoint:
        """Return this role's endpoint, dropping any handle the role has no use for."""

    @abstractmethod
    def release(self, role: Role) -> None:
        """Close and unmap whatever this role holds; unlink if it is the owner. Idempotent."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(buffer_bytes={self.buffer_bytes})"
