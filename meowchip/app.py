#!/usr/bin/env python3
"""
pygame front end for the meowchip CHIP-8 interpreter.

Features:
- Phosphor glow/bloom rendering of the 64x32 display
- QWERTY mapping of the 16-key hex keypad
- Fixed-rate cycle pacing, pause and a debug overlay
"""

import logging
import random
import sys
from typing import Optional, Tuple

import numpy as np
import pygame

from .config import COLORS, EmulatorConfig
from .constants import DISPLAY_W, DISPLAY_H, MEMORY_SIZE
from .cpu import Chip8CPU
from .disasm import disassemble
from .errors import Chip8Error, ConfigError, LoadFailure

logger = logging.getLogger(__name__)

STATUS_H = 25

# Keyboard mapping (QWERTY -> CHIP-8 hex keypad)
# CHIP-8 Keypad:    Keyboard:
# 1 2 3 C          1 2 3 4
# 4 5 6 D          Q W E R
# 7 8 9 E          A S D F
# A 0 B F          Z X C V
KEY_MAP = {
    pygame.K_1: 0x1, pygame.K_2: 0x2, pygame.K_3: 0x3, pygame.K_4: 0xC,
    pygame.K_q: 0x4, pygame.K_w: 0x5, pygame.K_e: 0x6, pygame.K_r: 0xD,
    pygame.K_a: 0x7, pygame.K_s: 0x8, pygame.K_d: 0x9, pygame.K_f: 0xE,
    pygame.K_z: 0xA, pygame.K_x: 0x0, pygame.K_c: 0xB, pygame.K_v: 0xF,
}


class GlowRenderer:
    """Phosphor glow/bloom post-processing effect"""

    def __init__(self, config: EmulatorConfig,
                 width: int = DISPLAY_W, height: int = DISPLAY_H):
        self.width = width
        self.height = height
        self.scale = config.scale
        self.fg_color = config.fg_color
        self.bg_color = config.bg_color
        self.bloom_strength = config.bloom_strength
        self.blur_radius = config.blur_radius
        self.glow_upscale = 4

        self.final_size = (width * self.scale, height * self.scale)

    def box_blur(self, arr: np.ndarray, passes: int = 1) -> np.ndarray:
        """Fast box blur using rolling averages"""
        a = arr.copy()
        for _ in range(passes):
            a = (np.roll(a, 1, axis=1) + a + np.roll(a, -1, axis=1)) / 3.0
            a = (np.roll(a, 1, axis=0) + a + np.roll(a, -1, axis=0)) / 3.0
        return a

    def render(self, framebuffer: np.ndarray) -> Tuple[pygame.Surface, pygame.Surface]:
        """
        Convert the (height, width) 0/1 framebuffer to glow surfaces

        Returns:
            (base_surface, glow_surface) tuple
        """
        # Transpose to pygame's (width, height) order
        base = framebuffer.T.astype(np.float32)

        # Upscale before blurring so the halo spreads past pixel edges
        glow = np.kron(base, np.ones((self.glow_upscale, self.glow_upscale),
                                     dtype=np.float32))
        glow = self.box_blur(glow, passes=1 + self.blur_radius)
        glow = np.clip(glow * self.bloom_strength, 0.0, 1.0)

        color = np.array(self.fg_color, dtype=np.float32)
        glow_surf = pygame.surfarray.make_surface(
            (glow[:, :, None] * color).astype(np.uint8))
        base_surf = pygame.surfarray.make_surface(
            (base[:, :, None] * color).astype(np.uint8))

        base_final = pygame.transform.scale(base_surf, self.final_size)
        glow_final = pygame.transform.smoothscale(glow_surf, self.final_size)
        return base_final, glow_final

    def create_background(self) -> pygame.Surface:
        """Create CRT-style background with scanlines"""
        surf = pygame.Surface(self.final_size)
        surf.fill(self.bg_color)

        line_color = tuple(min(c + 5, 255) for c in self.bg_color)
        for y in range(0, self.final_size[1], 2):
            pygame.draw.line(surf, line_color, (0, y), (self.final_size[0], y))

        return surf


class Chip8App:
    """Cycle driver: input, pacing, rendering around one Chip8CPU"""

    def __init__(self, cpu: Chip8CPU, config: EmulatorConfig, title: str = "meowchip"):
        pygame.init()
        pygame.display.set_caption(f"🐱 {title}")

        self.cpu = cpu
        self.config = config
        self.renderer = GlowRenderer(config)
        width, height = self.renderer.final_size

        self.screen = pygame.display.set_mode((width, height + STATUS_H))
        self.clock = pygame.time.Clock()
        self.font = pygame.font.Font(None, 20)
        self.background = self.renderer.create_background()
        self.frame: Optional[Tuple[pygame.Surface, pygame.Surface]] = None

        self.running = True
        self.paused = False
        self.show_debug = config.show_debug
        self.status = "P = Pause | F1 = Debug | ESC = Exit"
        self.beep_frames = 0

    def handle_events(self):
        """Process input events"""
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.running = False

            elif event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    self.running = False
                elif event.key == pygame.K_p:
                    self.paused = not self.paused
                    self.status = "Paused" if self.paused else "Running"
                elif event.key == pygame.K_F1:
                    self.show_debug = not self.show_debug
                elif event.key in KEY_MAP:
                    self.cpu.key_down(KEY_MAP[event.key])

            elif event.type == pygame.KEYUP:
                if event.key in KEY_MAP:
                    self.cpu.key_up(KEY_MAP[event.key])

    def update(self):
        """Run one frame's worth of CPU cycles"""
        if self.paused:
            return

        for _ in range(self.config.cycles_per_frame):
            self.cpu.execute_cycle()

        if self.cpu.beep_flag:
            self.cpu.beep_flag = False
            self.beep_frames = self.config.frame_hz // 4

    def render(self):
        """Render display"""
        if self.cpu.draw_flag or self.frame is None:
            self.frame = self.renderer.render(self.cpu.video.pixels)
            self.cpu.draw_flag = False

        base_surf, glow_surf = self.frame
        self.screen.blit(self.background, (0, 0))
        self.screen.blit(glow_surf, (0, 0), special_flags=pygame.BLEND_ADD)
        self.screen.blit(base_surf, (0, 0))

        if self.show_debug:
            self._render_debug()

        self._render_status()
        pygame.display.flip()

    def _render_status(self):
        width, height = self.renderer.final_size
        pygame.draw.rect(self.screen, COLORS['status_bg'],
                         pygame.Rect(0, height, width, STATUS_H))

        text = self.status
        if self.beep_frames > 0:
            self.beep_frames -= 1
            text = "*** BEEP ***"
        if self.cpu.waiting_for_key:
            text += " | waiting for key"

        text_surf = self.font.render(text, True, COLORS['text_dim'])
        self.screen.blit(text_surf, (10, height + 5))

    def _render_debug(self):
        """Render debug information overlay"""
        s = self.cpu.state
        width, _ = self.renderer.final_size

        overlay = pygame.Surface((220, 110), pygame.SRCALPHA)
        overlay.fill((0, 0, 0, 180))
        self.screen.blit(overlay, (width - 230, 5))

        lines = [
            f"PC: ${s.PC:03X}  I: ${s.I:03X}",
            f"SP: {s.SP}  DT: {s.delay_timer:02X}  ST: {s.sound_timer:02X}",
            "V0-V7: " + " ".join(f"{v:02X}" for v in s.V[:8]),
            "V8-VF: " + " ".join(f"{v:02X}" for v in s.V[8:]),
        ]

        if s.PC < MEMORY_SIZE - 1:
            opcode = self.cpu.fetch()
            lines.append(f"OP: ${opcode:04X} {disassemble(opcode)}")

        for i, line in enumerate(lines):
            text = self.font.render(line, True, self.config.fg_color)
            self.screen.blit(text, (width - 225, 10 + i * 18))

    def run(self):
        """Main loop"""
        try:
            while self.running:
                self.handle_events()
                self.update()
                self.render()
                self.clock.tick(self.config.frame_hz)
        finally:
            pygame.quit()


def main():
    """Main entry point"""
    logging.basicConfig(level=logging.INFO,
                        format="[%(levelname)s] %(name)s: %(message)s")

    if len(sys.argv) < 2:
        print("Usage: meowchip <rom.ch8> [config.json]")
        sys.exit(2)

    print("🐱 meowchip - CHIP-8 interpreter")
    print("  CHIP-8 Keypad: 1234 / QWER / ASDF / ZXCV")
    print("  P = Pause/Resume   F1 = Debug   ESC = Exit")
    print()

    rom_path = sys.argv[1]
    try:
        config = EmulatorConfig()
        if len(sys.argv) > 2:
            config = EmulatorConfig.from_file(sys.argv[2])

        cpu = Chip8CPU(rng=random.Random(config.seed))
        cpu.load_rom_file(rom_path)
    except (LoadFailure, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    app = Chip8App(cpu, config, title=rom_path)
    try:
        app.run()
    except Chip8Error as e:
        logger.error("Emulation stopped: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
