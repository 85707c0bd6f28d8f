"""Monochrome 64x32 video buffer with XOR sprite blitting."""

from typing import Sequence

import numpy as np

from .constants import DISPLAY_W, DISPLAY_H


class VideoBuffer:
    """CHIP-8 display memory, one byte (0 or 1) per pixel"""

    def __init__(self, width: int = DISPLAY_W, height: int = DISPLAY_H):
        self.width = width
        self.height = height
        self._pixels = np.zeros((height, width), dtype=np.uint8)

    @property
    def pixels(self) -> np.ndarray:
        """Read-only (height, width) view for renderers"""
        view = self._pixels.view()
        view.flags.writeable = False
        return view

    def pixel(self, x: int, y: int) -> int:
        return int(self._pixels[y % self.height, x % self.width])

    def lit_count(self) -> int:
        return int(self._pixels.sum())

    def clear(self):
        self._pixels.fill(0)

    def draw(self, x: int, y: int, sprite: Sequence[int]) -> int:
        """
        XOR a sprite onto the buffer.

        Each byte of ``sprite`` is one 8-pixel row, most significant bit
        on the left. Coordinates wrap around both edges.

        Returns:
            1 if any lit pixel was switched off, else 0
        """
        collision = 0

        for row, sprite_byte in enumerate(sprite):
            py = (y + row) % self.height

            for col in range(8):
                if sprite_byte & (0x80 >> col):
                    px = (x + col) % self.width

                    if self._pixels[py, px]:
                        collision = 1

                    self._pixels[py, px] ^= 1

        return collision
