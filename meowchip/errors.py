"""Exception types raised (or reported) by the emulator."""


class Chip8Error(Exception):
    """Base class for every emulator error"""


class LoadFailure(Chip8Error):
    """Program file missing, unreadable or too large for memory"""


class UnrecognizedOpcode(Chip8Error):
    """
    Opcode that matches no instruction.

    The CPU never raises this; it builds one, logs it and keeps running
    with the program counter left where it was.
    """

    def __init__(self, opcode: int, address: int):
        self.opcode = opcode
        self.address = address
        super().__init__(f"Unknown opcode ${opcode:04X} at ${address:03X}")


class StackFault(Chip8Error):
    """Call with a full stack, or return with an empty one"""


class MemoryFault(Chip8Error):
    """Memory access outside the 4KB address space"""

    def __init__(self, address: int):
        self.address = address
        super().__init__(f"Memory access out of range: ${address:X}")


class ConfigError(Chip8Error):
    """Invalid emulator configuration"""
