import os

from loguru import logger

from handoff.shared.constants import DEFAULT_BUFFER_BYTES
from handoff.shared.errors import HandleInvalidError, ResourceCreationError
from handoff.shared.ipc.transports.base import Transport, best_effort
from handoff.shared.ipc.transports.endpoints import Endpoint, FdEndpoint
from handoff.shared.types.common import Direction, Role, TransportKind


class AnonymousPipeTransport(Transport):
    """
    An unnamed pipe. The pair can only be inherited, never looked up, so
    `setup()` must run before the producer process is forked.

    Each side drops its unused end in `open()`: the reader only sees end-of-stream
    once every copy of the write end is closed.
    """

    kind = TransportKind.PIPE

    def __init__(self, buffer_bytes: int = DEFAULT_BUFFER_BYTES):
        super().__init__(buffer_bytes)
        self._read_fd: int | None = None
        self._write_fd: int | None = None
        self._endpoint: Endpoint | None = None

    def setup(self) -> None:
        assert self._read_fd is None and self._write_fd is None
        try:
            self._read_fd, self._write_fd = os.pipe()
        except OSError as e:
            raise ResourceCreationError(f"Could not create pipe: {e}") from e
        logger.debug(f"Created pipe (read={self._read_fd}, write={self._write_fd})")

    def open(self, role: Role) -> Endpoint:
        assert self._endpoint is None, "Pipe endpoint already opened in this process"

        match role:
            case Role.PRODUCER:
                fd, self._write_fd = self._write_fd, None
                self._close_read_end()
                direction = Direction.WRITE_ONLY
            case Role.CONSUMER:
                fd, self._read_fd = self._read_fd, None
                self._close_write_end()
                direction = Direction.READ_ONLY

        if fd is None:
            raise HandleInvalidError(f"Pipe has no {direction} end to hand to the {role}")
        self._endpoint = FdEndpoint(fd, direction, label=f"pipe:{role}")
        return self._endpoint

    def release(self, role: Role) -> None:
        if self._endpoint is not None:
            endpoint = self._endpoint
            best_effort(f"close {endpoint.label}", endpoint.close)
        self._close_read_end()
        self._close_write_end()

    def _close_read_end(self) -> None:
        if self._read_fd is not None:
            fd, self._read_fd = self._read_fd, None
            best_effort(f"close pipe read end {fd}", lambda: os.close(fd))

    def _close_write_end(self) -> None:
        if self._write_fd is not None:
            fd, self._write_fd = self._write_fd, None
            best_effort(f"close pipe write end {fd}", lambda: os.close(fd))
