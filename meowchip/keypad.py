"""16-key hex keypad state."""

from typing import List

from .constants import NUM_KEYS


class Keypad:
    """
    Which of the keys 0x0-0xF are held down.

    The input side writes through press/release, the CPU only reads.
    """

    def __init__(self):
        self.keys: List[bool] = [False] * NUM_KEYS

    def press(self, key: int):
        if 0 <= key < NUM_KEYS:
            self.keys[key] = True

    def release(self, key: int):
        if 0 <= key < NUM_KEYS:
            self.keys[key] = False

    def is_pressed(self, key: int) -> bool:
        return self.keys[key & 0xF]

    def held(self) -> List[bool]:
        """Snapshot of the current key states"""
        return list(self.keys)
