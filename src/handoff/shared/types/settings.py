import os
import tomllib
from pathlib import Path

from loguru import logger
from pydantic import Field, ValidationError, field_validator

from handoff.shared.constants import (
    DEFAULT_BUFFER_BYTES,
    DEFAULT_FIFO_MODE,
    DEFAULT_FIFO_PATH,
    DEFAULT_SHM_NAME,
    HANDOFF_CONFIG_FILE,
    INT32_SIZE,
)
from handoff.shared.types.common import TransportKind
from handoff.utils.pydantic_ext import FrozenModel


class TransportSettings(FrozenModel):
    kind: TransportKind = TransportKind.PIPE
    # two int32 slots is the least any transport can carry: the count and one element
    buffer_bytes: int = Field(default=DEFAULT_BUFFER_BYTES, ge=2 * INT32_SIZE)


class FifoSettings(FrozenModel):
    path: Path = DEFAULT_FIFO_PATH
    mode: int = Field(default=DEFAULT_FIFO_MODE, ge=0, le=0o777)


class SharedMemorySettings(FrozenModel):
    name: str = DEFAULT_SHM_NAME

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        stripped = v.lstrip("/")
        if not stripped or "/" in stripped:
            raise ValueError(
                "Shared-memory names must be one non-empty path component, e.g. '/segment'"
            )
        return v


class SessionSettings(FrozenModel):
    # None keeps the untimed blocking behaviour
    join_timeout: float | None = Field(default=None, gt=0)


class HandoffSettings(FrozenModel):
    transport: TransportSettings = Field(default_factory=TransportSettings)
    fifo: FifoSettings = Field(default_factory=FifoSettings)
    shm: SharedMemorySettings = Field(default_factory=SharedMemorySettings)
    session: SessionSettings = Field(default_factory=SessionSettings)


def load_settings(config_file: Path = HANDOFF_CONFIG_FILE) -> HandoffSettings:
    try:
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
        settings = HandoffSettings.model_validate(data)
    except FileNotFoundError:
        settings = HandoffSettings()
    except (tomllib.TOMLDecodeError, ValidationError) as e:
        logger.warning(f"Invalid config file {config_file}: {e}")
        settings = HandoffSettings()

    # Env vars override the config file.
    env_fifo_path = os.environ.get("HANDOFF_FIFO_PATH")
    if env_fifo_path is not None:
        settings = settings.model_copy(
            update={"fifo": settings.fifo.model_copy(update={"path": Path(env_fifo_path)})}
        )
    env_shm_name = os.environ.get("HANDOFF_SHM_NAME")
    if env_shm_name is not None:
        settings = settings.model_copy(
            update={"shm": SharedMemorySettings(name=env_shm_name)}
        )

    return settings
