import contextlib
import multiprocessing as mp
import signal
import sys
from contextlib import ExitStack
from dataclasses import dataclass, field
from multiprocessing.context import BaseContext
from multiprocessing.process import BaseProcess

from loguru import logger

from handoff.session.sources import MessageSource
from handoff.session.state import SessionStateMachine
from handoff.shared.constants import REAP_GRACE_SECONDS
from handoff.shared.errors import (
    FailureKind,
    HandoffError,
    ResourceCreationError,
    SynchronizationError,
    error_for_kind,
    exit_code_for,
    kind_for_exit_code,
)
from handoff.shared.ipc.transports import Transport
from handoff.shared.types.common import Role
from handoff.shared.types.message import Message
from handoff.shared.types.session import (
    SessionCompleted,
    SessionFailed,
    SessionOutcome,
    SessionState,
)


def run_producer(transport: Transport, source: MessageSource) -> None:
    """
    Producer process entrypoint: open the write side, collect the message, send it,
    release. Exits with the failure kind's exit code so the consumer can tell why.
    """
    code = 0
    try:
        with ExitStack() as stack:
            stack.callback(transport.release, Role.PRODUCER)
            endpoint = transport.open(Role.PRODUCER)
            message = source(transport.capacity_limit)
            transport.channel().send(endpoint, message)
            logger.info(f"Producer handed off {message.count} elements")
    except HandoffError as e:
        logger.error(f"Producer failed ({e.kind}): {e}")
        code = exit_code_for(e.kind)
    sys.exit(code)


def _exit_cause(rc: int | None) -> str:
    if isinstance(rc, int) and rc < 0:
        sig = -rc
        try:
            return f"signal={sig} ({signal.strsignal(sig)})"
        except Exception:
            return f"signal={sig}"
    return f"exitcode={rc}"


@dataclass(eq=False)
class SessionCoordinator:
    """
    Runs one producer/consumer exchange over `transport`.

    This process is the consumer & the transport's creator: it sets the transport
    up, forks the producer, reads the message & tears everything down. The
    producer runs `run_producer` in the child.
    """

    transport: Transport
    source: MessageSource
    # None waits on the producer indefinitely
    join_timeout: float | None = None
    mp_context: BaseContext = field(default_factory=lambda: mp.get_context("fork"))
    machine: SessionStateMachine = field(default_factory=SessionStateMachine, init=False)
    producer: BaseProcess | None = field(default=None, init=False)

    def run(self) -> SessionOutcome:
        assert self.machine.state is SessionState.INIT, "A session runs only once"
        logger.info(f"Starting session over {self.transport!r}")
        consumer_error: HandoffError | None = None
        failed_stage = SessionState.INIT
        message: Message | None = None

        try:
            with ExitStack() as stack:
                # registered before setup so partial acquisitions are released too
                stack.callback(self.transport.release, Role.CONSUMER)
                message = self._consume()
        except HandoffError as e:
            consumer_error = e
            failed_stage = self.machine.state

        # a timed-out barrier has already waited its turn
        timed_out = isinstance(consumer_error, SynchronizationError)
        producer_error = self._reap(0 if timed_out else self.join_timeout)

        outcome = self._outcome(message, consumer_error, failed_stage, producer_error)
        if isinstance(outcome, SessionFailed):
            logger.error(
                f"Session failed: {outcome.kind} in {outcome.stage} ({outcome.role}): {outcome.error_message}"
            )
        else:
            logger.info(f"Session completed with {outcome.message.count} elements")
        return outcome

    def _consume(self) -> Message:
        self.transport.setup()
        self.machine.advance(SessionState.TRANSPORT_READY)

        producer = self.mp_context.Process(
            target=run_producer,
            args=(self.transport, self.source),
            name="handoff-producer",
            daemon=True,
        )
        try:
            producer.start()
        except OSError as e:
            raise ResourceCreationError(f"Could not spawn the producer: {e}") from e
        # only a started producer is ever joined
        self.producer = producer
        self.machine.advance(SessionState.PRODUCER_ACTIVE)
        self.machine.advance(SessionState.HANDOFF_PENDING)

        if self.transport.requires_join_barrier:
            # the segment carries no readiness signal: the producer's exit is the signal
            self._join_barrier()
        # pipe: drops our write end; FIFO: blocks until the producer opens its end
        endpoint = self.transport.open(Role.CONSUMER)
        self.machine.advance(SessionState.CONSUMER_ACTIVE)
        return self.transport.channel().receive(endpoint)

    def _join_barrier(self) -> None:
        assert self.producer is not None
        self.producer.join(self.join_timeout)
        if self.producer.is_alive():
            raise SynchronizationError(
                f"Producer did not finish within {self.join_timeout}s"
            )
        if self.producer.exitcode != 0:
            raise SynchronizationError(
                f"Producer exited abnormally ({_exit_cause(self.producer.exitcode)})"
            )

    def _reap(self, timeout: float | None) -> HandoffError | None:
        """Wait for the producer & translate its exit status into its failure, if any."""
        if self.producer is None:
            return None

        self.producer.join(timeout)
        if self.producer.is_alive():
            logger.warning("Producer didn't finish in time, terminating")
            self.producer.terminate()
            self.producer.join(REAP_GRACE_SECONDS)
            if self.producer.is_alive():
                logger.critical("Producer didn't respond to SIGTERM, killing")
                with contextlib.suppress(ValueError):
                    self.producer.kill()
                self.producer.join(REAP_GRACE_SECONDS)
            return SynchronizationError(
                f"Producer did not finish within {self.join_timeout}s"
            )

        rc = self.producer.exitcode
        logger.debug(f"Producer exited with {_exit_cause(rc)}")
        if rc == 0:
            return None

        kind = kind_for_exit_code(rc) if rc is not None else None
        if kind is None:
            return SynchronizationError(f"Producer terminated ({_exit_cause(rc)})")
        return error_for_kind(kind, f"Producer reported {kind} ({_exit_cause(rc)})")

    def _outcome(
        self,
        message: Message | None,
        consumer_error: HandoffError | None,
        failed_stage: SessionState,
        producer_error: HandoffError | None,
    ) -> SessionOutcome:
        if producer_error is None and consumer_error is None:
            assert message is not None
            self.machine.advance(SessionState.COMPLETED)
            return SessionCompleted(message=message)

        if not self.machine.terminal:
            self.machine.fail()

        # when one side breaks, the other usually sees a broken stream as a consequence;
        # report the cause rather than the echo. A kind both sides saw is the consumer's.
        if producer_error is not None and (
            consumer_error is None
            or consumer_error.kind is FailureKind.IO_BROKEN
            or producer_error.kind not in (FailureKind.IO_BROKEN, consumer_error.kind)
        ):
            return SessionFailed.from_error(
                producer_error, stage=SessionState.PRODUCER_ACTIVE, role=Role.PRODUCER
            )

        assert consumer_error is not None
        return SessionFailed.from_error(
            consumer_error, stage=failed_stage, role=Role.CONSUMER
        )
