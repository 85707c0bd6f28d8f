"""
CPU tests for meowchip.

Each test loads a tiny program at 0x200 and steps it with execute_cycle(),
checking registers, memory, stack and PC against the CHIP-8 instruction set.
"""
import logging
import random

import pytest

from meowchip.constants import FONTSET, PROGRAM_START, STACK_SIZE
from meowchip.cpu import Chip8CPU, CPUMode, decode
from meowchip.errors import LoadFailure, MemoryFault, StackFault


def make_cpu(*opcodes, seed=0, **kwargs):
    """Build a CPU with the given 16-bit words loaded at 0x200."""
    cpu = Chip8CPU(rng=random.Random(seed), **kwargs)
    cpu.load_rom(b"".join(op.to_bytes(2, "big") for op in opcodes))
    return cpu


def run(cpu, cycles):
    for _ in range(cycles):
        cpu.execute_cycle()
    return cpu


# =============================================================================
#  DECODE / LOAD
# =============================================================================

class TestDecode:

    def test_fields(self):
        ins = decode(0xD12F)
        assert (ins.x, ins.y, ins.n, ins.nn, ins.nnn) == (0x1, 0x2, 0xF, 0x2F, 0x12F)

    def test_fetch_is_big_endian_and_does_not_move_pc(self):
        cpu = make_cpu(0xA2F0)
        assert cpu.fetch() == 0xA2F0
        assert cpu.state.PC == PROGRAM_START


class TestLoad:

    def test_font_loaded_at_zero(self):
        cpu = Chip8CPU()
        assert list(cpu.state.memory[:80]) == FONTSET

    def test_rom_copied_verbatim(self):
        cpu = Chip8CPU()
        cpu.load_rom(b"\x12\x34\xAB")
        assert cpu.state.memory[0x200:0x203] == b"\x12\x34\xAB"
        assert cpu.state.memory[0x203] == 0

    def test_rom_filling_memory_is_accepted(self):
        cpu = Chip8CPU()
        cpu.load_rom(b"\x01" * (4096 - 0x200))
        assert cpu.state.memory[4095] == 1

    def test_oversized_rom_rejected(self):
        cpu = Chip8CPU()
        with pytest.raises(LoadFailure):
            cpu.load_rom(b"\x00" * (4096 - 0x200 + 1))

    def test_load_rom_file(self, tmp_path):
        rom = tmp_path / "prog.ch8"
        rom.write_bytes(b"\x60\x2A")
        cpu = Chip8CPU()
        cpu.load_rom_file(rom)
        run(cpu, 1)
        assert cpu.state.V[0] == 0x2A

    def test_missing_file_is_load_failure(self, tmp_path):
        cpu = Chip8CPU()
        with pytest.raises(LoadFailure):
            cpu.load_rom_file(tmp_path / "nope.ch8")


# =============================================================================
#  ARITHMETIC
# =============================================================================

PAIRS = [(0, 0), (1, 254), (200, 55), (200, 56), (255, 255), (7, 9), (9, 7), (128, 128)]


class TestArithmetic:

    @pytest.mark.parametrize("a,b", PAIRS)
    def test_load_then_add_immediate_wraps(self, a, b):
        cpu = run(make_cpu(0x6F07, 0x6300 | a, 0x7300 | b), 3)
        assert cpu.state.V[3] == (a + b) % 256
        assert cpu.state.V[0xF] == 7  # 7XNN never touches VF

    @pytest.mark.parametrize("a,b", PAIRS)
    def test_add_carry(self, a, b):
        cpu = run(make_cpu(0x6A00 | a, 0x6B00 | b, 0x8AB4), 3)
        assert cpu.state.V[0xA] == (a + b) % 256
        assert cpu.state.V[0xF] == (1 if a + b > 255 else 0)

    @pytest.mark.parametrize("a,b", PAIRS)
    def test_sub_borrow(self, a, b):
        cpu = run(make_cpu(0x6A00 | a, 0x6B00 | b, 0x8AB5), 3)
        assert cpu.state.V[0xA] == (a - b) % 256
        assert cpu.state.V[0xF] == (0 if a < b else 1)

    @pytest.mark.parametrize("a,b", PAIRS)
    def test_subn_borrow(self, a, b):
        cpu = run(make_cpu(0x6A00 | a, 0x6B00 | b, 0x8AB7), 3)
        assert cpu.state.V[0xA] == (b - a) % 256
        assert cpu.state.V[0xF] == (0 if b < a else 1)

    @pytest.mark.parametrize("a", [0x00, 0x01, 0x02, 0x7F, 0x80, 0xFF])
    def test_shift_right_captures_low_bit(self, a):
        cpu = run(make_cpu(0x6500 | a, 0x8506), 2)
        assert cpu.state.V[5] == a >> 1
        assert cpu.state.V[0xF] == a & 1

    @pytest.mark.parametrize("a", [0x00, 0x01, 0x40, 0x7F, 0x80, 0xFF])
    def test_shift_left_captures_high_bit(self, a):
        cpu = run(make_cpu(0x6500 | a, 0x850E), 2)
        assert cpu.state.V[5] == (a << 1) % 256
        assert cpu.state.V[0xF] == a & 0x80

    def test_shift_left_flag_keeps_bit_position(self):
        """8XYE leaves bit 7 where it was: VF is 0x80, not 1."""
        cpu = run(make_cpu(0x6580, 0x850E), 2)
        assert cpu.state.V[5] == 0
        assert cpu.state.V[0xF] == 0x80

    def test_shift_left_into_vf(self):
        cpu = run(make_cpu(0x6F81, 0x8FFE), 2)
        assert cpu.state.V[0xF] == 0x80

    def test_shift_ignores_vy(self):
        cpu = run(make_cpu(0x6504, 0x66FF, 0x8566), 3)
        assert cpu.state.V[5] == 2
        assert cpu.state.V[6] == 0xFF

    def test_flag_overwrites_vf_result(self):
        """When X is F the flag, not the arithmetic result, lands in VF."""
        cpu = run(make_cpu(0x6FFF, 0x6101, 0x8F14), 3)
        assert cpu.state.V[0xF] == 1

    def test_logic_ops(self):
        cpu = run(make_cpu(0x60F0, 0x613C,
                           0x8210, 0x8211,            # V2 = V1 ; V2 |= V1
                           0x8300, 0x8312,            # V3 = V0 ; V3 &= V1
                           0x8400, 0x8413), 8)        # V4 = V0 ; V4 ^= V1
        V = cpu.state.V
        assert V[2] == 0x3C
        assert V[3] == 0xF0 & 0x3C
        assert V[4] == 0xF0 ^ 0x3C
        assert V[0xF] == 0

    def test_random_is_masked_and_reproducible(self):
        expected = random.Random(1234).randint(0, 255) & 0x3C
        cpu = run(make_cpu(0xC03C, 0xC100, seed=1234), 2)
        assert cpu.state.V[0] == expected
        assert cpu.state.V[1] == 0


# =============================================================================
#  CONTROL FLOW
# =============================================================================

class TestSkips:
    """Skip instructions only ever move PC, by 2 or 4."""

    @pytest.mark.parametrize("program,taken", [
        ([0x6005, 0x3005], True),
        ([0x6005, 0x3006], False),
        ([0x6005, 0x4006], True),
        ([0x6005, 0x4005], False),
        ([0x6005, 0x5010], False),
        ([0x6000, 0x5010], True),
        ([0x6005, 0x9010], True),
        ([0x6000, 0x9010], False),
    ])
    def test_skip(self, program, taken):
        cpu = run(make_cpu(*program), 1)
        before = list(cpu.state.V)
        run(cpu, 1)
        assert cpu.state.PC == PROGRAM_START + 2 + (4 if taken else 2)
        assert cpu.state.V == before

    def test_key_skips(self):
        cpu = make_cpu(0x6007, 0xE09E, 0x0000, 0xE0A1)
        cpu.key_down(7)
        run(cpu, 2)
        assert cpu.state.PC == 0x206
        run(cpu, 1)
        assert cpu.state.PC == 0x208  # held, so EXA1 does not skip

        cpu.key_up(7)
        cpu.state.PC = 0x202
        run(cpu, 1)
        assert cpu.state.PC == 0x204


class TestJumps:

    def test_jump(self):
        cpu = run(make_cpu(0x1345), 1)
        assert cpu.state.PC == 0x345

    def test_jump_plus_v0(self):
        cpu = run(make_cpu(0x6004, 0xB300), 2)
        assert cpu.state.PC == 0x304

    def test_call_and_return(self):
        cpu = make_cpu(0x6000, 0x2300)
        cpu.state.memory[0x300:0x304] = b"\x61\x09\x00\xEE"
        run(cpu, 2)
        assert cpu.state.PC == 0x300
        assert cpu.state.SP == 1
        assert cpu.state.stack[0] == 0x202

        run(cpu, 2)
        assert cpu.state.PC == 0x204
        assert cpu.state.SP == 0
        assert cpu.state.V[1] == 9

    def test_return_with_empty_stack_fails_fast(self):
        cpu = make_cpu(0x00EE)
        with pytest.raises(StackFault):
            run(cpu, 1)

    def test_stack_overflow_fails_fast(self):
        cpu = make_cpu(0x2200)  # calls itself forever
        run(cpu, STACK_SIZE)
        assert cpu.state.SP == STACK_SIZE
        with pytest.raises(StackFault):
            run(cpu, 1)


# =============================================================================
#  INDEX / MEMORY
# =============================================================================

class TestMemoryOps:

    def test_bcd(self):
        cpu = run(make_cpu(0x659D, 0xA300, 0xF533), 3)  # V5 = 157
        assert list(cpu.state.memory[0x300:0x303]) == [1, 5, 7]

    @pytest.mark.parametrize("value,digits", [(0, [0, 0, 0]), (9, [0, 0, 9]), (255, [2, 5, 5])])
    def test_bcd_edges(self, value, digits):
        cpu = run(make_cpu(0x6000 | value, 0xA300, 0xF033), 3)
        assert list(cpu.state.memory[0x300:0x303]) == digits

    def test_store_and_load_registers(self):
        cpu = run(make_cpu(0x6011, 0x6122, 0x6233, 0x6344, 0xA400, 0xF255), 6)
        assert list(cpu.state.memory[0x400:0x404]) == [0x11, 0x22, 0x33, 0]
        assert cpu.state.I == 0x400

        cpu.state.V[:4] = [0, 0, 0, 0]
        cpu.state.memory[0x300:0x302] = b"\xF3\x65"
        cpu.state.PC = 0x300
        run(cpu, 1)
        assert cpu.state.V[:4] == [0x11, 0x22, 0x33, 0]
        assert cpu.state.I == 0x400

    def test_add_to_index_sets_overflow_flag(self):
        cpu = run(make_cpu(0xAFFE, 0x6003, 0xF01E), 3)
        assert cpu.state.I == 0x1001
        assert cpu.state.V[0xF] == 1

        cpu = run(make_cpu(0xA100, 0x6001, 0xF01E), 3)
        assert cpu.state.I == 0x101
        assert cpu.state.V[0xF] == 0

    def test_font_lookup_reproduces_glyph(self):
        cpu = run(make_cpu(0x6005, 0xF029, 0xF465), 3)
        assert cpu.state.I == 25
        assert cpu.state.V[:5] == FONTSET[25:30]

    def test_out_of_range_write_fails_fast(self):
        cpu = make_cpu(0xAFFF, 0xF155)
        with pytest.raises(MemoryFault) as excinfo:
            run(cpu, 2)
        assert excinfo.value.address == 0x1000

    def test_fetch_past_end_fails_fast(self):
        cpu = make_cpu(0x1FFF)
        run(cpu, 1)
        with pytest.raises(MemoryFault):
            run(cpu, 1)


# =============================================================================
#  DISPLAY
# =============================================================================

class TestDraw:

    def test_draw_twice_restores_screen(self):
        cpu = run(make_cpu(0xA000, 0x6A03, 0x6B02, 0xDAB5, 0xDAB5), 4)
        lit = sum(bin(b).count("1") for b in FONTSET[:5])
        assert cpu.video.lit_count() == lit
        assert cpu.state.V[0xF] == 0
        assert cpu.draw_flag

        run(cpu, 1)
        assert cpu.video.lit_count() == 0
        assert cpu.state.V[0xF] == 1

    def test_draw_at_register_coordinates(self):
        cpu = run(make_cpu(0xA000, 0x6A0A, 0x6B05, 0xDAB1), 4)
        # glyph "0" top row is 0xF0
        assert [cpu.video.pixel(10 + i, 5) for i in range(8)] == [1, 1, 1, 1, 0, 0, 0, 0]

    def test_clear_screen(self):
        cpu = run(make_cpu(0xA000, 0xD005, 0x00E0), 2)
        cpu.draw_flag = False
        run(cpu, 1)
        assert cpu.video.lit_count() == 0
        assert cpu.draw_flag
        assert cpu.state.PC == 0x206


# =============================================================================
#  KEY WAIT
# =============================================================================

class TestKeyWait:

    def test_waits_until_key_pressed(self):
        cpu = run(make_cpu(0xF30A, 0x6101), 1)
        assert cpu.state.mode is CPUMode.AWAITING_KEY
        assert cpu.waiting_for_key
        assert cpu.state.PC == 0x202

        run(cpu, 5)
        assert cpu.state.PC == 0x202
        assert cpu.state.V[3] == 0

        cpu.key_down(0xB)
        run(cpu, 1)
        assert cpu.state.V[3] == 0xB
        assert cpu.state.mode is CPUMode.RUNNING

        run(cpu, 1)
        assert cpu.state.V[1] == 1

    def test_key_already_held_needs_a_fresh_press(self):
        cpu = make_cpu(0xF30A)
        cpu.key_down(2)
        run(cpu, 3)
        assert cpu.waiting_for_key

        cpu.key_up(2)
        run(cpu, 1)
        assert cpu.waiting_for_key

        cpu.key_down(2)
        run(cpu, 1)
        assert not cpu.waiting_for_key
        assert cpu.state.V[3] == 2

    def test_timers_tick_while_waiting(self):
        cpu = make_cpu(0xF00A)
        cpu.state.delay_timer = 5
        run(cpu, 4)
        assert cpu.state.delay_timer == 1


# =============================================================================
#  TIMERS
# =============================================================================

class TestTimers:

    @pytest.mark.parametrize("start", [1, 2, 10, 255])
    def test_delay_reaches_zero_after_start_cycles(self, start):
        cpu = make_cpu(0x1200)
        cpu.state.delay_timer = start
        run(cpu, start - 1)
        assert cpu.state.delay_timer == 1
        run(cpu, 1)
        assert cpu.state.delay_timer == 0
        run(cpu, 3)
        assert cpu.state.delay_timer == 0

    def test_sound_cue_fires_on_one_to_zero_only(self):
        fired = []
        cpu = make_cpu(0x1200, on_beep=lambda: fired.append(cpu.state.sound_timer))
        cpu.state.sound_timer = 3

        run(cpu, 2)
        assert fired == []
        assert not cpu.beep_flag

        run(cpu, 1)
        assert fired == [0]
        assert cpu.beep_flag

        cpu.beep_flag = False
        run(cpu, 5)
        assert fired == [0]
        assert not cpu.beep_flag

    def test_timer_set_by_instruction_ticks_same_cycle(self):
        cpu = run(make_cpu(0x6003, 0xF015, 0xF018, 0xF207), 3)
        assert cpu.state.delay_timer == 1
        assert cpu.state.sound_timer == 2
        run(cpu, 1)
        assert cpu.state.V[2] == 1


# =============================================================================
#  UNKNOWN OPCODES
# =============================================================================

class TestUnrecognized:

    @pytest.mark.parametrize("opcode", [0x0123, 0x5121, 0x8128, 0x9AB3, 0xE1FF, 0xF1FF])
    def test_pc_held_and_reported(self, opcode, caplog):
        cpu = make_cpu(opcode)
        cpu.state.delay_timer = 4
        with caplog.at_level(logging.WARNING, logger="meowchip.cpu"):
            run(cpu, 2)

        assert cpu.state.PC == PROGRAM_START
        assert cpu.last_unrecognized.opcode == opcode
        assert cpu.last_unrecognized.address == PROGRAM_START
        assert cpu.state.delay_timer == 2
        assert sum("Unknown opcode" in r.getMessage() for r in caplog.records) == 2
