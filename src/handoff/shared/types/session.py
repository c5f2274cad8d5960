from enum import StrEnum
from typing import TypeAlias

from handoff.shared.errors import FailureKind, HandoffError
from handoff.shared.types.common import Role
from handoff.shared.types.message import Message
from handoff.utils.pydantic_ext import TaggedModel


class SessionState(StrEnum):
    INIT = "Init"
    TRANSPORT_READY = "TransportReady"
    PRODUCER_ACTIVE = "ProducerActive"
    HANDOFF_PENDING = "HandoffPending"
    CONSUMER_ACTIVE = "ConsumerActive"
    COMPLETED = "Completed"
    FAILED = "Failed"


class BaseSessionOutcome(TaggedModel):
    def is_completed(self) -> bool:
        return isinstance(self, SessionCompleted)


class SessionCompleted(BaseSessionOutcome):
    message: Message


class SessionFailed(BaseSessionOutcome):
    kind: FailureKind
    stage: SessionState
    role: Role
    error_message: str = ""

    @classmethod
    def from_error(
        cls, error: HandoffError, *, stage: SessionState, role: Role
    ) -> "SessionFailed":
        return cls(kind=error.kind, stage=stage, role=role, error_message=str(error))


SessionOutcome: TypeAlias = SessionCompleted | SessionFailed
