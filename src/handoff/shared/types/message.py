from typing import Annotated

from pydantic import Field

from handoff.shared.constants import INT32_MAX, INT32_MIN
from handoff.utils.pydantic_ext import FrozenModel

Int32 = Annotated[int, Field(ge=INT32_MIN, le=INT32_MAX)]


class Message(FrozenModel):
    """
    The one message a session exchanges: a count-prefixed array of int32.

    `count` is derived from the payload, so the two can never disagree. Bounds on
    `count` are the codec's job, not the model's.
    """

    payload: tuple[Int32, ...]

    @property
    def count(self) -> int:
        return len(self.payload)

    def __str__(self) -> str:
        return " ".join(str(v) for v in self.payload)
