"""
SEE:
 - https://man7.org/linux/man-pages/man7/shm_overview.7.html
 - https://docs.python.org/3/library/multiprocessing.shared_memory.html

A flat segment carries no "data ready" signal of its own. The consumer must not
touch it until the producer is done, which the session enforces by joining the
producer process before reading (`requires_join_barrier`).
"""

import errno
import os
from multiprocessing.shared_memory import SharedMemory

from loguru import logger

from handoff.shared.constants import DEFAULT_BUFFER_BYTES, DEFAULT_SHM_NAME
from handoff.shared.errors import (
    CapacityExceededError,
    HandleInvalidError,
    HandoffError,
    MappingError,
    ResourceCreationError,
)
from handoff.shared.ipc.transports.base import NamedResource, Transport, best_effort
from handoff.shared.ipc.transports.endpoints import Endpoint, RegionEndpoint
from handoff.shared.types.common import Role, TransportKind


def _shm_name(name: str) -> str:
    # SharedMemory adds the leading slash itself
    return name.lstrip("/")


def _creation_error(name: str, e: OSError | ValueError) -> HandoffError:
    if isinstance(e, ValueError) or e.errno in (errno.EINVAL, errno.EFBIG, errno.ENOSPC):
        return CapacityExceededError(f"Could not size shared memory '{name}': {e}")
    if e.errno == errno.ENOMEM:
        return MappingError(f"Could not map shared memory '{name}': {e}")
    return ResourceCreationError(f"Could not create shared memory '{name}': {e}")


class SharedMemoryRegion:
    """
    An explicitly sized view over one process's mapping of a segment.

    Every access is bounds-checked against `size`; writes past the end transfer
    nothing rather than raising, so the channel sees a zero-length transfer.
    """

    def __init__(self, shm: SharedMemory, size: int):
        if shm.size < size:
            raise CapacityExceededError(
                f"Segment '{shm.name}' holds {shm.size} bytes, {size} are needed"
            )
        self._shm = shm
        self._size = size
        self._closed = False

    @property
    def size(self) -> int:
        return self._size

    @property
    def name(self) -> str:
        return self._shm.name

    @property
    def closed(self) -> bool:
        return self._closed

    def write_at(self, offset: int, data: memoryview | bytes) -> int:
        self._check_open()
        n = max(0, min(len(data), self._size - offset))
        self._shm.buf[offset : offset + n] = data[:n]
        return n

    def read_at(self, offset: int, size: int) -> bytes:
        self._check_open()
        n = max(0, min(size, self._size - offset))
        return bytes(self._shm.buf[offset : offset + n])

    def close(self) -> None:
        """Unmap this process's view. The segment itself stays until unlinked."""
        if self._closed:
            return
        self._closed = True
        self._shm.close()

    def unlink(self) -> None:
        self._shm.unlink()

    def _check_open(self) -> None:
        if self._closed:
            raise HandleInvalidError(f"Region of '{self.name}' is unmapped")


class SharedMemoryTransport(Transport):
    """
    A POSIX shared-memory segment. The consumer creates, sizes & maps it before
    the producer is spawned, then owns its removal; the producer attaches by name
    & maps its own view.

    The first int32 slot is reserved for the count, so the payload gets one slot
    fewer than the segment holds.
    """

    kind = TransportKind.SHM
    reserved_header_slots = 1
    requires_join_barrier = True

    def __init__(
        self, name: str = DEFAULT_SHM_NAME, buffer_bytes: int = DEFAULT_BUFFER_BYTES
    ):
        super().__init__(buffer_bytes)
        self.resource = NamedResource(_shm_name(name))
        self._creator_pid: int | None = None
        # the creator's view, inherited by a forked producer
        self._region: SharedMemoryRegion | None = None
        # a producer's own view, attached by name
        self._peer_region: SharedMemoryRegion | None = None
        self._endpoint: Endpoint | None = None

    @property
    def name(self) -> str:
        return self.resource.name

    def setup(self) -> None:
        assert self._region is None
        try:
            shm = SharedMemory(self.name, create=True, size=self.buffer_bytes, track=False)
            created = True
        except FileExistsError:
            # reuse a segment someone else made; it is theirs to remove
            shm = self._attach(creating=True)
            created = False
        except (OSError, ValueError) as e:
            raise _creation_error(self.name, e) from e

        try:
            self._region = SharedMemoryRegion(shm, self.buffer_bytes)
        except CapacityExceededError:
            shm.close()
            raise
        self.resource.created = created
        self._creator_pid = os.getpid()
        logger.debug(
            f"{'Created' if created else 'Opened existing'} shared memory '{self.name}' "
            f"({self.buffer_bytes} bytes)"
        )

    def open(self, role: Role) -> Endpoint:
        assert self._endpoint is None, "Shared-memory endpoint already opened in this process"

        match role:
            case Role.PRODUCER:
                self._drop_inherited_view()
                self._peer_region = SharedMemoryRegion(self._attach(), self.buffer_bytes)
                region = self._peer_region
            case Role.CONSUMER:
                if self._region is None or self._region.closed:
                    raise HandleInvalidError(f"Shared memory '{self.name}' isn't mapped")
                region = self._region

        self._endpoint = RegionEndpoint(region, label=f"shm:{role}")
        return self._endpoint

    def release(self, role: Role) -> None:
        if self._endpoint is not None:
            endpoint = self._endpoint
            best_effort(f"close {endpoint.label}", endpoint.close)

        match role:
            case Role.PRODUCER:
                view = self._peer_region
            case Role.CONSUMER:
                view = self._region
        if view is not None:
            best_effort(f"unmap {self.name} ({role})", view.close)
            if self.resource.may_unlink(role):
                self.resource.unlink(role, lambda _name: view.unlink())

    def _attach(self, creating: bool = False) -> SharedMemory:
        try:
            return SharedMemory(self.name, create=False, track=False)
        except FileNotFoundError as e:
            if creating:
                raise ResourceCreationError(
                    f"Shared memory '{self.name}' vanished while opening it"
                ) from e
            raise HandleInvalidError(f"No shared memory named '{self.name}'") from e
        except (OSError, ValueError) as e:
            raise MappingError(f"Could not map shared memory '{self.name}': {e}") from e

    def _drop_inherited_view(self) -> None:
        # a forked producer unmaps its copy of the creator's view & maps its own
        if self._region is not None and self._creator_pid != os.getpid():
            region, self._region = self._region, None
            best_effort(f"unmap inherited view of {self.name}", region.close)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, buffer_bytes={self.buffer_bytes})"
