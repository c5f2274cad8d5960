# pyright: reportAny=false, reportUnknownArgumentType=false, reportUnknownVariableType=false

from typing import Any, Self

from pydantic import BaseModel, ConfigDict, model_serializer, model_validator
from pydantic_core.core_schema import (
    SerializerFunctionWrapHandler,
    ValidatorFunctionWrapHandler,
)


class FrozenModel(BaseModel):
    """
    An immutable model that rejects unknown fields.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")


class TaggedModel(FrozenModel):
    """
    Serializes as `{ClassName: {...fields}}` so members of a union with
    identical shapes stay distinguishable after a round trip.
    """

    @model_serializer(mode="wrap")
    def _serialize(self, handler: SerializerFunctionWrapHandler):
        inner = handler(self)
        return {self.__class__.__name__: inner}

    @model_validator(mode="wrap")
    @classmethod
    def _validate(cls, v: Any, handler: ValidatorFunctionWrapHandler) -> Self:
        if isinstance(v, dict) and len(v) == 1 and cls.__name__ in v:
            return handler(v[cls.__name__])

        return handler(v)
