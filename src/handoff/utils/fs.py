import os
import pathlib
from typing import TypeAlias

StrPath: TypeAlias = str | os.PathLike[str]


def ensure_parent_directory_exists(filename: StrPath) -> None:
    """
    Ensure the directory containing the file exists (create it if necessary).
    """
    pathlib.Path(filename).parent.mkdir(parents=True, exist_ok=True)
