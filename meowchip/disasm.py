"""Opcode decoding, shared by the CPU dispatch and the disassembler."""

from typing import Dict, List, NamedTuple, Optional, Tuple

from .constants import PROGRAM_START


class Instruction(NamedTuple):
    """Opcode split into its conventional fields"""
    opcode: int
    x: int      # 4-bit register index
    y: int      # 4-bit register index
    n: int      # 4-bit constant
    nn: int     # 8-bit constant
    nnn: int    # 12-bit address


def decode(opcode: int) -> Instruction:
    return Instruction(
        opcode=opcode,
        x=(opcode >> 8) & 0x0F,
        y=(opcode >> 4) & 0x0F,
        n=opcode & 0x000F,
        nn=opcode & 0x00FF,
        nnn=opcode & 0x0FFF,
    )


def dispatch_key(ins: Instruction) -> Tuple[int, int]:
    """
    (group, key) pair that identifies an instruction.

    The group is the top nibble. Groups 0, 8, E and F are told apart by the
    whole opcode, the low nibble or the low byte; 5 and 9 only exist with a
    zero low nibble; every other group holds a single instruction (key 0).
    """
    group = ins.opcode >> 12
    if group == 0x0:
        return group, ins.opcode
    if group in (0x5, 0x8, 0x9):
        return group, ins.n
    if group in (0xE, 0xF):
        return group, ins.nn
    return group, 0


# Mnemonic templates, filled from the Instruction fields
FORMS: Dict[int, Dict[int, str]] = {
    0x0: {0x00E0: "CLS", 0x00EE: "RET"},
    0x1: {0: "JP ${nnn:03X}"},
    0x2: {0: "CALL ${nnn:03X}"},
    0x3: {0: "SE V{x:X}, ${nn:02X}"},
    0x4: {0: "SNE V{x:X}, ${nn:02X}"},
    0x5: {0: "SE V{x:X}, V{y:X}"},
    0x6: {0: "LD V{x:X}, ${nn:02X}"},
    0x7: {0: "ADD V{x:X}, ${nn:02X}"},
    0x8: {
        0x0: "LD V{x:X}, V{y:X}", 0x1: "OR V{x:X}, V{y:X}",
        0x2: "AND V{x:X}, V{y:X}", 0x3: "XOR V{x:X}, V{y:X}",
        0x4: "ADD V{x:X}, V{y:X}", 0x5: "SUB V{x:X}, V{y:X}",
        0x6: "SHR V{x:X}", 0x7: "SUBN V{x:X}, V{y:X}", 0xE: "SHL V{x:X}",
    },
    0x9: {0: "SNE V{x:X}, V{y:X}"},
    0xA: {0: "LD I, ${nnn:03X}"},
    0xB: {0: "JP V0, ${nnn:03X}"},
    0xC: {0: "RND V{x:X}, ${nn:02X}"},
    0xD: {0: "DRW V{x:X}, V{y:X}, {n}"},
    0xE: {0x9E: "SKP V{x:X}", 0xA1: "SKNP V{x:X}"},
    0xF: {
        0x07: "LD V{x:X}, DT", 0x0A: "LD V{x:X}, K", 0x15: "LD DT, V{x:X}",
        0x18: "LD ST, V{x:X}", 0x1E: "ADD I, V{x:X}", 0x29: "LD F, V{x:X}",
        0x33: "LD B, V{x:X}", 0x55: "LD [I], V{x:X}", 0x65: "LD V{x:X}, [I]",
    },
}


def disassemble(opcode: int) -> str:
    """Mnemonic for one opcode, or "??? $XXXX" if it isn't an instruction"""
    ins = decode(opcode)
    group, key = dispatch_key(ins)
    form: Optional[str] = FORMS[group].get(key)
    if form is None:
        return f"??? ${opcode:04X}"
    return form.format(**ins._asdict())


def disassemble_program(data: bytes, start_addr: int = PROGRAM_START) -> List[str]:
    """
    Convert a raw program into "ADDR:  MNEMONIC" lines.

    A trailing odd byte is listed as data.
    """
    words = len(data) // 2
    lines = [
        f"{start_addr + 2 * i:04X}:  {disassemble((data[2 * i] << 8) | data[2 * i + 1])}"
        for i in range(words)
    ]
    if len(data) % 2:
        lines.append(f"{start_addr + 2 * words:04X}:  .byte ${data[-1]:02X}")
    return lines
