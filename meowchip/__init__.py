"""meowchip: a CHIP-8 interpreter core with a pygame front end."""

from .cpu import Chip8CPU, CPUMode, CPUState, Instruction, decode
from .display import VideoBuffer
from .errors import (Chip8Error, ConfigError, LoadFailure, MemoryFault,
                     StackFault, UnrecognizedOpcode)
from .keypad import Keypad
from .loader import read_program

__version__ = "0.1.0"

__all__ = [
    "Chip8CPU", "CPUMode", "CPUState", "Instruction", "decode",
    "VideoBuffer", "Keypad", "read_program",
    "Chip8Error", "ConfigError", "LoadFailure", "MemoryFault",
    "StackFault", "UnrecognizedOpcode",
]
