"""
CHIP-8 CPU core.

All machine state lives in one CPUState owned by the Chip8CPU. Each call to
Chip8CPU.execute_cycle() runs one instruction and then ticks both timers.
"""

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .constants import (FONTSET, FONT_GLYPH_SIZE, MAX_PROGRAM_SIZE, MEMORY_SIZE,
                        NUM_KEYS, NUM_REGISTERS, PROGRAM_START, STACK_SIZE)
from .disasm import Instruction, decode, disassemble, dispatch_key
from .display import VideoBuffer
from .errors import LoadFailure, MemoryFault, StackFault, UnrecognizedOpcode
from .keypad import Keypad
from .loader import read_program

logger = logging.getLogger(__name__)


class CPUMode(Enum):
    RUNNING = "running"
    AWAITING_KEY = "awaiting_key"   # parked on FX0A


@dataclass
class CPUState:
    """CHIP-8 CPU state container"""
    # Memory
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))

    # Registers
    V: List[int] = field(default_factory=lambda: [0] * NUM_REGISTERS)  # V0-VF
    I: int = 0              # Index register
    PC: int = PROGRAM_START # Program counter
    SP: int = 0             # Stack pointer

    # Stack
    stack: List[int] = field(default_factory=lambda: [0] * STACK_SIZE)

    # Timers
    delay_timer: int = 0
    sound_timer: int = 0

    # Wait for key state
    mode: CPUMode = CPUMode.RUNNING
    key_register: int = 0
    keys_at_wait: List[bool] = field(default_factory=lambda: [False] * NUM_KEYS)


# A handler returns the next PC, or None to fall through to PC + 2
Handler = Callable[[Instruction], Optional[int]]


class Chip8CPU:
    """CHIP-8 interpreter: registers, memory, stack, timers, dispatch"""

    def __init__(self, rng: Optional[random.Random] = None,
                 video: Optional[VideoBuffer] = None,
                 keypad: Optional[Keypad] = None,
                 on_beep: Optional[Callable[[], None]] = None):
        self.state = CPUState()
        self.video = video if video is not None else VideoBuffer()
        self.keypad = keypad if keypad is not None else Keypad()
        self.rng = rng if rng is not None else random.Random()
        self.on_beep = on_beep

        self.draw_flag = False      # cleared by the renderer
        self.beep_flag = False      # cleared by whoever plays the cue
        self.last_unrecognized: Optional[UnrecognizedOpcode] = None

        # Top-nibble table; groups 0, 8, E and F dispatch again below
        self._main_ops: Dict[int, Handler] = {
            0x1: self._jp, 0x2: self._call, 0x3: self._se_byte,
            0x4: self._sne_byte, 0x5: self._se_reg, 0x6: self._ld_byte,
            0x7: self._add_byte, 0x9: self._sne_reg, 0xA: self._ld_i,
            0xB: self._jp_v0, 0xC: self._rnd, 0xD: self._drw,
        }
        self._sys_ops: Dict[int, Handler] = {
            0x00E0: self._cls, 0x00EE: self._ret,
        }
        self._alu_ops: Dict[int, Handler] = {
            0x0: self._ld_reg, 0x1: self._or, 0x2: self._and, 0x3: self._xor,
            0x4: self._add_reg, 0x5: self._sub, 0x6: self._shr,
            0x7: self._subn, 0xE: self._shl,
        }
        self._key_ops: Dict[int, Handler] = {
            0x9E: self._skp, 0xA1: self._sknp,
        }
        self._misc_ops: Dict[int, Handler] = {
            0x07: self._ld_vx_dt, 0x0A: self._ld_vx_k, 0x15: self._ld_dt_vx,
            0x18: self._ld_st_vx, 0x1E: self._add_i, 0x29: self._ld_f,
            0x33: self._ld_b, 0x55: self._store_regs, 0x65: self._load_regs,
        }
        self._groups: Dict[int, Dict[int, Handler]] = {
            0x0: self._sys_ops, 0x8: self._alu_ops,
            0xE: self._key_ops, 0xF: self._misc_ops,
        }

        self._load_fontset()

    def _load_fontset(self):
        """Load built-in font sprites to memory"""
        for i, byte in enumerate(FONTSET):
            self.state.memory[i] = byte

    def load_rom(self, data: bytes):
        """Copy a program into memory at 0x200"""
        if len(data) > MAX_PROGRAM_SIZE:
            raise LoadFailure(
                f"ROM is {len(data)} bytes, limit is {MAX_PROGRAM_SIZE}")

        self.state.memory[PROGRAM_START:PROGRAM_START + len(data)] = data
        logger.info("Loaded %d bytes at $%03X", len(data), PROGRAM_START)

    def load_rom_file(self, filepath: Union[str, Path]):
        """Load ROM from file, raising LoadFailure if it can't be read"""
        self.load_rom(read_program(filepath))

    @property
    def waiting_for_key(self) -> bool:
        return self.state.mode is CPUMode.AWAITING_KEY

    def key_down(self, key: int):
        self.keypad.press(key)

    def key_up(self, key: int):
        self.keypad.release(key)

    # ─── Memory access ───

    def _read(self, address: int) -> int:
        if not 0 <= address < MEMORY_SIZE:
            raise MemoryFault(address)
        return self.state.memory[address]

    def _write(self, address: int, value: int):
        if not 0 <= address < MEMORY_SIZE:
            raise MemoryFault(address)
        self.state.memory[address] = value & 0xFF

    def fetch(self) -> int:
        """Read the 16-bit opcode at PC (PC is not moved)"""
        pc = self.state.PC
        return (self._read(pc) << 8) | self._read(pc + 1)

    # ─── Cycle ───

    def execute_cycle(self):
        """Run one instruction (or one key-wait poll), then tick the timers"""
        if self.state.mode is CPUMode.AWAITING_KEY:
            self._poll_key_wait()
        else:
            self.execute(self.fetch())

        self.update_timers()

    def execute(self, opcode: int):
        """Decode and execute a single opcode located at PC"""
        ins = decode(opcode)
        handler = self._resolve(ins)
        s = self.state

        if handler is None:
            err = UnrecognizedOpcode(opcode, s.PC)
            self.last_unrecognized = err
            logger.warning("%s", err)
            return

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("$%03X  %04X  %s", s.PC, opcode, disassemble(opcode))

        next_pc = handler(ins)
        s.PC = next_pc if next_pc is not None else s.PC + 2

    def _resolve(self, ins: Instruction) -> Optional[Handler]:
        group, key = dispatch_key(ins)
        table = self._groups.get(group)
        if table is not None:
            return table.get(key)
        return self._main_ops[group] if key == 0 else None

    def update_timers(self):
        """Decrement both timers; fire the audible cue when sound hits zero"""
        s = self.state
        if s.delay_timer > 0:
            s.delay_timer -= 1

        if s.sound_timer > 0:
            s.sound_timer -= 1
            if s.sound_timer == 0:
                self.beep_flag = True
                logger.info("*** BEEP ***")
                if self.on_beep is not None:
                    self.on_beep()

    def _poll_key_wait(self):
        """Finish FX0A once a key goes down that wasn't down when the wait began"""
        s = self.state
        for key, pressed in enumerate(self.keypad.keys):
            if pressed and not s.keys_at_wait[key]:
                s.V[s.key_register] = key
                s.mode = CPUMode.RUNNING
                logger.debug("Key %X pressed, resuming", key)
                return
            if not pressed:
                s.keys_at_wait[key] = False

    def _skip_if(self, condition: bool) -> Optional[int]:
        return self.state.PC + 4 if condition else None

    # ─── 0x0XXX ───

    def _cls(self, ins: Instruction):
        # 00E0: CLS - Clear display
        self.video.clear()
        self.draw_flag = True

    def _ret(self, ins: Instruction) -> int:
        # 00EE: RET - Return from subroutine
        s = self.state
        if s.SP == 0:
            raise StackFault(f"RET with empty stack at ${s.PC:03X}")
        s.SP -= 1
        return s.stack[s.SP] + 2

    # ─── 1NNN - 7XNN ───

    def _jp(self, ins: Instruction) -> int:
        return ins.nnn

    def _call(self, ins: Instruction) -> int:
        s = self.state
        if s.SP >= STACK_SIZE:
            raise StackFault(f"CALL ${ins.nnn:03X} with full stack at ${s.PC:03X}")
        s.stack[s.SP] = s.PC
        s.SP += 1
        return ins.nnn

    def _se_byte(self, ins: Instruction):
        return self._skip_if(self.state.V[ins.x] == ins.nn)

    def _sne_byte(self, ins: Instruction):
        return self._skip_if(self.state.V[ins.x] != ins.nn)

    def _se_reg(self, ins: Instruction):
        V = self.state.V
        return self._skip_if(V[ins.x] == V[ins.y])

    def _ld_byte(self, ins: Instruction):
        self.state.V[ins.x] = ins.nn

    def _add_byte(self, ins: Instruction):
        V = self.state.V
        V[ins.x] = (V[ins.x] + ins.nn) & 0xFF

    # ─── 8XYZ: ALU operations ───
    # Where a flag is produced it is written last, so VF always ends up
    # holding the flag even when X is F.

    def _ld_reg(self, ins: Instruction):
        V = self.state.V
        V[ins.x] = V[ins.y]

    def _or(self, ins: Instruction):
        V = self.state.V
        V[ins.x] |= V[ins.y]

    def _and(self, ins: Instruction):
        V = self.state.V
        V[ins.x] &= V[ins.y]

    def _xor(self, ins: Instruction):
        V = self.state.V
        V[ins.x] ^= V[ins.y]

    def _add_reg(self, ins: Instruction):
        # 8XY4: ADD Vx, Vy (VF = carry)
        V = self.state.V
        result = V[ins.x] + V[ins.y]
        V[ins.x] = result & 0xFF
        V[0xF] = 1 if result > 0xFF else 0

    def _sub(self, ins: Instruction):
        # 8XY5: SUB Vx, Vy (VF = NOT borrow)
        V = self.state.V
        vx, vy = V[ins.x], V[ins.y]
        V[ins.x] = (vx - vy) & 0xFF
        V[0xF] = 0 if vx < vy else 1

    def _shr(self, ins: Instruction):
        V = self.state.V
        vx = V[ins.x]
        V[ins.x] = vx >> 1
        V[0xF] = vx & 0x1

    def _subn(self, ins: Instruction):
        # 8XY7: SUBN Vx, Vy (VF = NOT borrow)
        V = self.state.V
        vx, vy = V[ins.x], V[ins.y]
        V[ins.x] = (vy - vx) & 0xFF
        V[0xF] = 0 if vy < vx else 1

    def _shl(self, ins: Instruction):
        V = self.state.V
        vx = V[ins.x]
        V[ins.x] = (vx << 1) & 0xFF
        # 8XYE: SHL Vx - VF keeps bit 7 in place (0x00 or 0x80)
        V[0xF] = vx & 0x80

    # ─── 9XY0 - DXYN ───

    def _sne_reg(self, ins: Instruction):
        V = self.state.V
        return self._skip_if(V[ins.x] != V[ins.y])

    def _ld_i(self, ins: Instruction):
        self.state.I = ins.nnn

    def _jp_v0(self, ins: Instruction) -> int:
        return ins.nnn + self.state.V[0]

    def _rnd(self, ins: Instruction):
        self.state.V[ins.x] = self.rng.randint(0, 255) & ins.nn

    def _drw(self, ins: Instruction):
        # DXYN: DRW Vx, Vy, nibble
        s = self.state
        sprite = [self._read(s.I + row) for row in range(ins.n)]
        s.V[0xF] = self.video.draw(s.V[ins.x], s.V[ins.y], sprite)
        self.draw_flag = True

    # ─── EX9E/EXA1: Key operations ───

    def _skp(self, ins: Instruction):
        return self._skip_if(self.keypad.is_pressed(self.state.V[ins.x]))

    def _sknp(self, ins: Instruction):
        return self._skip_if(not self.keypad.is_pressed(self.state.V[ins.x]))

    # ─── FX07-FX65: Misc operations ───

    def _ld_vx_dt(self, ins: Instruction):
        self.state.V[ins.x] = self.state.delay_timer

    def _ld_vx_k(self, ins: Instruction):
        # FX0A: LD Vx, K - park until a fresh key press
        s = self.state
        s.mode = CPUMode.AWAITING_KEY
        s.key_register = ins.x
        s.keys_at_wait = self.keypad.held()
        logger.debug("Waiting for key into V%X", ins.x)

    def _ld_dt_vx(self, ins: Instruction):
        self.state.delay_timer = self.state.V[ins.x]

    def _ld_st_vx(self, ins: Instruction):
        self.state.sound_timer = self.state.V[ins.x]

    def _add_i(self, ins: Instruction):
        s = self.state
        s.I = (s.I + s.V[ins.x]) & 0xFFFF
        s.V[0xF] = 1 if s.I > 0xFFF else 0

    def _ld_f(self, ins: Instruction):
        self.state.I = self.state.V[ins.x] * FONT_GLYPH_SIZE

    def _ld_b(self, ins: Instruction):
        # FX33: LD B, Vx (BCD)
        s = self.state
        value = s.V[ins.x]
        self._write(s.I, value // 100)
        self._write(s.I + 1, (value // 10) % 10)
        self._write(s.I + 2, value % 10)

    def _store_regs(self, ins: Instruction):
        s = self.state
        for i in range(ins.x + 1):
            self._write(s.I + i, s.V[i])

    def _load_regs(self, ins: Instruction):
        s = self.state
        for i in range(ins.x + 1):
            s.V[i] = self._read(s.I + i)
