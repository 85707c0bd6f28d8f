"""Machine constants and the built-in hex font."""

DISPLAY_W, DISPLAY_H = 64, 32          # CHIP-8 native resolution

MEMORY_SIZE = 4096                      # 4KB RAM
PROGRAM_START = 0x200                   # Programs load at 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START
STACK_SIZE = 16                         # 16-level stack
NUM_REGISTERS = 16                      # V0-VF registers
NUM_KEYS = 16                           # 16 hex keys

FONT_GLYPH_SIZE = 5                     # bytes per glyph

# CHIP-8 Font (4x5 pixels, stored as 5 bytes each)
FONTSET = [
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
]
