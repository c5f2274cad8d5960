import errno
import os
from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING

from handoff.shared.errors import HandleInvalidError, IoBrokenError
from handoff.shared.types.common import Direction

if TYPE_CHECKING:
    from handoff.shared.ipc.transports.shared_memory import SharedMemoryRegion


class EndpointState(StrEnum):
    CREATED = "created"
    ACTIVE = "active"
    CLOSED = "closed"


class Endpoint(ABC):
    """
    An owned handle onto one side of a transport.

    Lifecycle is `created -> active -> closed`; the first transfer activates it &
    `close()` is idempotent. Any transfer on a closed endpoint, or in a direction
    the endpoint doesn't support, is a `HandleInvalidError`.
    """

    def __init__(self, direction: Direction, label: str):
        self.direction = direction
        self.label = label
        self.state = EndpointState.CREATED

    def write(self, data: memoryview) -> int:
        self._check_usable(writing=True)
        return self._write(data)

    def read(self, size: int) -> bytes:
        self._check_usable(writing=False)
        return self._read(size)

    def close(self) -> None:
        if self.state is EndpointState.CLOSED:
            return
        self.state = EndpointState.CLOSED
        self._close()

    @property
    def closed(self) -> bool:
        return self.state is EndpointState.CLOSED

    def _check_usable(self, writing: bool) -> None:
        if self.state is EndpointState.CLOSED:
            raise HandleInvalidError(f"Endpoint {self.label} is closed")
        allowed = self.direction.writable if writing else self.direction.readable
        if not allowed:
            raise HandleInvalidError(
                f"Endpoint {self.label} is {self.direction}, cannot {'write' if writing else 'read'}"
            )
        self.state = EndpointState.ACTIVE

    @abstractmethod
    def _write(self, data: memoryview) -> int: ...

    @abstractmethod
    def _read(self, size: int) -> bytes: ...

    @abstractmethod
    def _close(self) -> None: ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.label}, {self.direction}, {self.state})"


class FdEndpoint(Endpoint):
    """A pipe or FIFO file descriptor driven with plain blocking `os.read`/`os.write`."""

    def __init__(self, fd: int, direction: Direction, label: str):
        super().__init__(direction, label)
        self._fd = fd

    def _write(self, data: memoryview) -> int:
        try:
            return os.write(self._fd, data)
        except BrokenPipeError:
            # every reader is gone; report it as end-of-stream rather than an OS error
            return 0
        except OSError as e:
            if e.errno == errno.EBADF:
                raise HandleInvalidError(f"Endpoint {self.label} has a bad descriptor") from e
            raise IoBrokenError(f"Endpoint {self.label} failed: {e}") from e

    def _read(self, size: int) -> bytes:
        try:
            return os.read(self._fd, size)
        except OSError as e:
            if e.errno == errno.EBADF:
                raise HandleInvalidError(f"Endpoint {self.label} has a bad descriptor") from e
            raise IoBrokenError(f"Endpoint {self.label} failed: {e}") from e

    def _close(self) -> None:
        os.close(self._fd)


class RegionEndpoint(Endpoint):
    """
    A cursor over a mapped shared-memory region.

    The region is addressed directly, so each call moves everything that fits &
    only the end of the region produces a zero-length transfer.
    """

    def __init__(self, region: "SharedMemoryRegion", label: str):
        super().__init__(Direction.READ_WRITE, label)
        self._region = region
        self._offset = 0

    @property
    def offset(self) -> int:
        return self._offset

    def _write(self, data: memoryview) -> int:
        written = self._region.write_at(self._offset, data)
        self._offset += written
        return written

    def _read(self, size: int) -> bytes:
        data = self._region.read_at(self._offset, size)
        self._offset += len(data)
        return data

    def _close(self) -> None:
        # the mapping belongs to the transport, which unmaps it on release
        pass
