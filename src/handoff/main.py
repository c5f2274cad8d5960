import argparse
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Self

from loguru import logger
from pydantic import Field, ValidationError

from handoff.session.coordinator import SessionCoordinator
from handoff.session.sources import (
    StaticMessageSource,
    message_from_values,
    read_message,
)
from handoff.shared.constants import HANDOFF_CONFIG_FILE, HANDOFF_LOG
from handoff.shared.errors import HandoffError
from handoff.shared.ipc.transports import make_transport
from handoff.shared.logging import logger_cleanup, logger_setup
from handoff.shared.types.common import Role, TransportKind
from handoff.shared.types.session import SessionFailed, SessionOutcome, SessionState
from handoff.shared.types.settings import HandoffSettings, load_settings
from handoff.utils.pydantic_ext import FrozenModel


class Args(FrozenModel):
    transport: TransportKind | None = None
    verbosity: int = 0
    config: Path = HANDOFF_CONFIG_FILE
    log_file: Path = HANDOFF_LOG
    fifo_path: Path | None = None
    fifo_mode: int | None = Field(default=None, ge=0, le=0o777)
    shm_name: str | None = None
    buffer_bytes: int | None = None
    join_timeout: float | None = None
    values: tuple[int, ...] | None = None

    @classmethod
    def parse(cls, argv: Sequence[str] | None = None) -> Self:
        parser = argparse.ArgumentParser(
            prog="handoff",
            description="Send a count-prefixed array of integers from a child process to its parent.",
        )
        parser.add_argument(
            "transport",
            nargs="?",
            choices=[kind.value for kind in TransportKind],
            help="transport to use (default: from config, else pipe)",
        )
        default_verbosity = 0
        parser.add_argument(
            "-q",
            "--quiet",
            action="store_const",
            const=-1,
            dest="verbosity",
            default=default_verbosity,
        )
        parser.add_argument(
            "-v",
            "--verbose",
            action="count",
            dest="verbosity",
            default=default_verbosity,
        )
        parser.add_argument("--config", type=Path, dest="config", default=HANDOFF_CONFIG_FILE)
        parser.add_argument("--log-file", type=Path, dest="log_file", default=HANDOFF_LOG)
        parser.add_argument("--fifo-path", type=Path, dest="fifo_path")
        parser.add_argument(
            "--fifo-mode",
            type=lambda s: int(s, 8),
            dest="fifo_mode",
            help="octal permission bits, e.g. 666",
        )
        parser.add_argument("--shm-name", dest="shm_name")
        parser.add_argument("--buffer-bytes", type=int, dest="buffer_bytes")
        parser.add_argument("--join-timeout", type=float, dest="join_timeout")
        parser.add_argument(
            "--values",
            type=int,
            nargs="+",
            dest="values",
            help="payload to send instead of prompting for it",
        )

        args = parser.parse_args(argv)
        return cls(**vars(args))  # pyright: ignore[reportAny] - We are intentionally validating here, we can't do it statically

    def apply(self, settings: HandoffSettings) -> HandoffSettings:
        """Layer the command-line overrides on top of the loaded settings."""
        data = settings.model_dump()
        if self.transport is not None:
            data["transport"]["kind"] = self.transport
        if self.buffer_bytes is not None:
            data["transport"]["buffer_bytes"] = self.buffer_bytes
        if self.fifo_path is not None:
            data["fifo"]["path"] = self.fifo_path
        if self.fifo_mode is not None:
            data["fifo"]["mode"] = self.fifo_mode
        if self.shm_name is not None:
            data["shm"]["name"] = self.shm_name
        if self.join_timeout is not None:
            data["session"]["join_timeout"] = self.join_timeout
        return HandoffSettings.model_validate(data)


def run(args: Args, settings: HandoffSettings) -> SessionOutcome:
    transport = make_transport(settings)

    # children get /dev/null for stdin, so the message is collected here & handed over
    try:
        if args.values is not None:
            message = message_from_values(args.values, transport.capacity_limit)
        else:
            message = read_message(sys.stdin, transport.capacity_limit, prompt=sys.stdout)
    except HandoffError as e:
        outcome = SessionFailed.from_error(e, stage=SessionState.INIT, role=Role.PRODUCER)
        logger.error(f"Rejected input: {outcome.error_message}")
        return outcome

    coordinator = SessionCoordinator(
        transport,
        StaticMessageSource(message),
        join_timeout=settings.session.join_timeout,
    )
    return coordinator.run()


def main(argv: Sequence[str] | None = None) -> int:
    args = Args.parse(argv)
    logger_setup(args.log_file, args.verbosity)

    try:
        settings = args.apply(load_settings(args.config))
    except ValidationError as e:
        logger.error(f"Invalid settings: {e}")
        logger_cleanup()
        return 2

    outcome = run(args, settings)
    if isinstance(outcome, SessionFailed):
        code = 1
    else:
        print(outcome.message)
        code = 0

    logger_cleanup()
    return code
