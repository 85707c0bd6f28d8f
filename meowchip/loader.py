"""Reading raw CHIP-8 program files."""

import logging
from pathlib import Path
from typing import Union

from .constants import MAX_PROGRAM_SIZE
from .errors import LoadFailure

logger = logging.getLogger(__name__)


def read_program(path: Union[str, Path]) -> bytes:
    """
    Read a program file from disk.

    The file is raw machine code: no header, no checksum.

    Raises:
        LoadFailure: the file can't be opened or read, or won't fit in memory
    """
    path = Path(path)
    try:
        with open(path, 'rb') as f:
            data = f.read()
    except OSError as e:
        raise LoadFailure(f"Failed to load ROM {path}: {e}") from e

    if len(data) > MAX_PROGRAM_SIZE:
        raise LoadFailure(
            f"ROM {path} is {len(data)} bytes, limit is {MAX_PROGRAM_SIZE}")

    logger.info("Read %s (%d bytes)", path.name, len(data))
    return data
