from enum import StrEnum


class Role(StrEnum):
    PRODUCER = "producer"
    CONSUMER = "consumer"


class TransportKind(StrEnum):
    PIPE = "pipe"
    FIFO = "fifo"
    SHM = "shm"


class Direction(StrEnum):
    WRITE_ONLY = "write-only"
    READ_ONLY = "read-only"
    READ_WRITE = "read-write"

    @property
    def readable(self) -> bool:
        return self is not Direction.WRITE_ONLY

    @property
    def writable(self) -> bool:
        return self is not Direction.READ_ONLY
