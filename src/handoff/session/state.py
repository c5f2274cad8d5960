from loguru import logger

from handoff.shared.types.session import SessionState

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.INIT: frozenset({SessionState.TRANSPORT_READY}),
    SessionState.TRANSPORT_READY: frozenset({SessionState.PRODUCER_ACTIVE}),
    SessionState.PRODUCER_ACTIVE: frozenset({SessionState.HANDOFF_PENDING}),
    SessionState.HANDOFF_PENDING: frozenset({SessionState.CONSUMER_ACTIVE}),
    SessionState.CONSUMER_ACTIVE: frozenset({SessionState.COMPLETED}),
    SessionState.COMPLETED: frozenset(),
    SessionState.FAILED: frozenset(),
}


class SessionStateMachine:
    """
    Init -> TransportReady -> ProducerActive -> HandoffPending -> ConsumerActive -> Completed,
    or Failed from any non-terminal state, remembering the stage it failed in.
    """

    def __init__(self) -> None:
        self.state = SessionState.INIT
        self.failed_stage: SessionState | None = None
        self.history: list[SessionState] = [SessionState.INIT]

    @property
    def terminal(self) -> bool:
        return self.state in (SessionState.COMPLETED, SessionState.FAILED)

    def advance(self, to: SessionState) -> None:
        assert to in _TRANSITIONS[self.state], f"Illegal transition {self.state} -> {to}"
        logger.debug(f"Session {self.state} -> {to}")
        self.state = to
        self.history.append(to)

    def fail(self) -> SessionState:
        assert not self.terminal, f"Session already ended in {self.state}"
        stage = self.state
        logger.debug(f"Session failed in {stage}")
        self.failed_stage = stage
        self.state = SessionState.FAILED
        self.history.append(SessionState.FAILED)
        return stage
