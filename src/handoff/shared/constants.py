import os
import sys
from pathlib import Path


def _get_xdg_dir(env_var: str, fallback: str) -> Path:
    """Get XDG directory with fallback. On non-Linux platforms, use ~/.handoff."""
    if sys.platform != "linux":
        return Path.home() / ".handoff"

    xdg_value = os.environ.get(env_var)
    if xdg_value:
        return Path(xdg_value) / "handoff"
    return Path.home() / fallback / "handoff"


_HANDOFF_HOME_ENV = os.environ.get("HANDOFF_HOME")
if _HANDOFF_HOME_ENV:
    HANDOFF_CONFIG_HOME = Path.home() / _HANDOFF_HOME_ENV
    HANDOFF_CACHE_HOME = Path.home() / _HANDOFF_HOME_ENV
else:
    HANDOFF_CONFIG_HOME = _get_xdg_dir("XDG_CONFIG_HOME", ".config")
    HANDOFF_CACHE_HOME = _get_xdg_dir("XDG_CACHE_HOME", ".cache")

HANDOFF_CONFIG_FILE = HANDOFF_CONFIG_HOME / "config.toml"
HANDOFF_LOG = HANDOFF_CACHE_HOME / "handoff.log"

# every payload element and the count prefix are 32-bit
INT32_SIZE = 4
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

# transport defaults
DEFAULT_BUFFER_BYTES = 1024
DEFAULT_FIFO_PATH = Path("/tmp/my_named_pipe")
DEFAULT_FIFO_MODE = 0o666  # world read-write
DEFAULT_SHM_NAME = "/my_shared_memory"

# seconds to wait for a producer after SIGTERM/SIGKILL before giving up on it
REAP_GRACE_SECONDS = 5.0
