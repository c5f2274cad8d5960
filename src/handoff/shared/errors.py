"""
Failure taxonomy for a handoff session.

Every error is terminal to the session it occurs in. Each concrete error
carries the `FailureKind` it reports as, and every kind has a distinct process
exit code so a producer running in a child process can report *why* it failed
to the consumer that reaps it.
"""

from enum import StrEnum
from typing import ClassVar


class FailureKind(StrEnum):
    RESOURCE_CREATION_FAILED = "ResourceCreationFailed"
    RESOURCE_EXISTS = "ResourceExists"
    CAPACITY_EXCEEDED = "CapacityExceeded"
    MAPPING_FAILED = "MappingFailed"
    HANDLE_INVALID = "HandleInvalid"
    MALFORMED_LENGTH = "MalformedLength"
    IO_BROKEN = "IoBroken"
    SYNCHRONIZATION_FAILED = "SynchronizationFailed"
    INPUT_REJECTED = "InputRejected"


# exit codes below 64 are left to the interpreter and to sysexits-style callers
_EXIT_CODE_BASE = 64
_KINDS: tuple[FailureKind, ...] = tuple(FailureKind)


def exit_code_for(kind: FailureKind) -> int:
    return _EXIT_CODE_BASE + _KINDS.index(kind)


def kind_for_exit_code(code: int) -> FailureKind | None:
    index = code - _EXIT_CODE_BASE
    if 0 <= index < len(_KINDS):
        return _KINDS[index]
    return None


class HandoffError(Exception):
    kind: ClassVar[FailureKind]


class ResourceCreationError(HandoffError):
    kind = FailureKind.RESOURCE_CREATION_FAILED


class ResourceExistsError(HandoffError):
    kind = FailureKind.RESOURCE_EXISTS


class CapacityExceededError(HandoffError):
    kind = FailureKind.CAPACITY_EXCEEDED


class MappingError(HandoffError):
    kind = FailureKind.MAPPING_FAILED


class HandleInvalidError(HandoffError):
    kind = FailureKind.HANDLE_INVALID


class MalformedLengthError(HandoffError):
    kind = FailureKind.MALFORMED_LENGTH


class IoBrokenError(HandoffError):
    kind = FailureKind.IO_BROKEN


class SynchronizationError(HandoffError):
    kind = FailureKind.SYNCHRONIZATION_FAILED


class InputRejectedError(HandoffError):
    kind = FailureKind.INPUT_REJECTED


def error_for_kind(kind: FailureKind, message: str) -> HandoffError:
    """Rebuild the error for a kind, e.g. one reported by another process."""
    for cls in HandoffError.__subclasses__():
        if cls.kind is kind:
            return cls(message)
    raise ValueError(f"No error class for {kind}")
