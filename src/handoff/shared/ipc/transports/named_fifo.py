"""
SEE:
 - https://man7.org/linux/man-pages/man3/mkfifo.3.html
 - https://man7.org/linux/man-pages/man7/fifo.7.html
 - https://pubs.opengroup.org/onlinepubs/007904875/functions/open.html
"""

import contextlib
import errno
import os
import stat

from loguru import logger

from handoff.shared.constants import DEFAULT_BUFFER_BYTES, DEFAULT_FIFO_MODE, DEFAULT_FIFO_PATH
from handoff.shared.errors import (
    HandleInvalidError,
    ResourceCreationError,
    ResourceExistsError,
)
from handoff.shared.ipc.transports.base import NamedResource, Transport, best_effort
from handoff.shared.ipc.transports.endpoints import Endpoint, FdEndpoint
from handoff.shared.types.common import Direction, Role, TransportKind
from handoff.utils.fs import StrPath, ensure_parent_directory_exists

# blocking opens: each side waits in open() until the complementary side opens too
OPEN_READER_FLAGS = os.O_RDONLY
OPEN_WRITER_FLAGS = os.O_WRONLY


def ensure_fifo_exists(path: StrPath, mode: int = DEFAULT_FIFO_MODE) -> bool:
    """
    Create a FIFO at `path` unless one is already there.

    Returns whether this call created it. An existing FIFO is fine; anything
    else already sitting at `path` is a `ResourceExistsError`.
    """
    try:
        ensure_parent_directory_exists(path)
        os.mkfifo(path, mode=mode)
    except OSError as e:
        if e.errno != errno.EEXIST:
            raise ResourceCreationError(f"Could not create FIFO at '{path}': {e}") from e

        # ensure the file that exists is a FIFO
        try:
            st = os.stat(path)
        except OSError as stat_error:
            raise ResourceCreationError(
                f"FIFO at '{path}' vanished while checking it: {stat_error}"
            ) from stat_error
        if stat.S_ISFIFO(st.st_mode):
            return False

        raise ResourceExistsError(f"The file '{path}' isn't a FIFO") from e

    # mkfifo filters the mode through the umask; try to apply the requested bits exactly
    with contextlib.suppress(PermissionError):
        os.chmod(path, mode)
    return True


class NamedFifoTransport(Transport):
    """
    A named pipe. The consumer creates the path & owns its removal; the producer
    only ever opens it.

    Removing the path doesn't affect descriptors already open on it, only future
    lookups.
    """

    kind = TransportKind.FIFO

    def __init__(
        self,
        path: StrPath = DEFAULT_FIFO_PATH,
        mode: int = DEFAULT_FIFO_MODE,
        buffer_bytes: int = DEFAULT_BUFFER_BYTES,
    ):
        super().__init__(buffer_bytes)
        self.path = os.fspath(path)
        self.mode = mode
        self.resource = NamedResource(self.path)
        self._endpoint: Endpoint | None = None

    def setup(self) -> None:
        self.resource.created = ensure_fifo_exists(self.path, self.mode)
        if self.resource.created:
            logger.debug(f"Created FIFO at '{self.path}' (mode {self.mode:o})")
        else:
            logger.debug(f"Reusing existing FIFO at '{self.path}'")

    def open(self, role: Role) -> Endpoint:
        assert self._endpoint is None, "FIFO endpoint already opened in this process"

        match role:
            case Role.PRODUCER:
                flags, direction = OPEN_WRITER_FLAGS, Direction.WRITE_ONLY
            case Role.CONSUMER:
                flags, direction = OPEN_READER_FLAGS, Direction.READ_ONLY

        logger.debug(f"{role} waiting for its peer to open '{self.path}'")
        try:
            fd = os.open(self.path, flags)
        except FileNotFoundError as e:
            raise HandleInvalidError(f"No FIFO at '{self.path}'") from e
        except OSError as e:
            raise HandleInvalidError(f"Could not open FIFO '{self.path}': {e}") from e

        # ensure what we opened is a FIFO, the path may have been replaced since setup
        if not stat.S_ISFIFO(os.fstat(fd).st_mode):
            os.close(fd)
            raise HandleInvalidError(f"The file '{self.path}' isn't a FIFO")

        self._endpoint = FdEndpoint(fd, direction, label=f"fifo:{role}")
        logger.debug(f"{role} opened '{self.path}' {direction}")
        return self._endpoint

    def release(self, role: Role) -> None:
        if self._endpoint is not None:
            endpoint = self._endpoint
            best_effort(f"close {endpoint.label}", endpoint.close)
        self.resource.unlink(role, os.unlink)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(path={self.path!r}, mode={self.mode:o})"
