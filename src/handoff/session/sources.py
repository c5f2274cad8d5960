"""
Where a producer gets its message from.

A `MessageSource` is called inside the producer process with the transport's
capacity limit and returns the message to send. `read_message` is the
interactive flavour: a count, then that many integers, from a text stream.
"""

from collections.abc import Callable, Iterator, Sequence
from typing import TextIO, TypeAlias

from handoff.shared.errors import InputRejectedError
from handoff.shared.ipc.wire import WireCodec
from handoff.shared.types.message import Message

MessageSource: TypeAlias = Callable[[int], Message]


class StaticMessageSource:
    """Hands over a message that was collected up front."""

    def __init__(self, message: Message):
        self.message = message

    def __call__(self, capacity_limit: int) -> Message:
        return self.message


def _tokens(stream: TextIO) -> Iterator[str]:
    for line in stream:
        yield from line.split()


def _next_int(tokens: Iterator[str], what: str) -> int:
    try:
        token = next(tokens)
    except StopIteration:
        raise InputRejectedError(f"Input ended before {what}") from None
    try:
        return int(token)
    except ValueError:
        raise InputRejectedError(f"Expected an integer for {what}, got {token!r}") from None


def read_message(
    stream: TextIO, capacity_limit: int, prompt: TextIO | None = None
) -> Message:
    """
    Read a count then `count` whitespace-separated integers from `stream`.

    The count is checked against the capacity limit before any element is read.
    Prompts go to `prompt` when given.
    """
    codec = WireCodec(capacity_limit)
    tokens = _tokens(stream)

    if prompt is not None:
        prompt.write("Enter number of elements: ")
        prompt.flush()
    count = codec.validate_count(_next_int(tokens, "the number of elements"))

    if prompt is not None:
        prompt.write(f"Enter {count} numbers: ")
        prompt.flush()
    values = [_next_int(tokens, f"element {i + 1} of {count}") for i in range(count)]
    return message_from_values(values, capacity_limit)


def message_from_values(values: Sequence[int], capacity_limit: int) -> Message:
    WireCodec(capacity_limit).validate_count(len(values))
    try:
        return Message(payload=tuple(values))
    except ValueError as e:
        raise InputRejectedError(f"Elements must fit in 32 bits: {e}") from e
