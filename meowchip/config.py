"""Front-end configuration: speed, colors and glow settings."""

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional, Tuple, Union

from .errors import ConfigError

# Colors (RGB)
COLORS = {
    'bg_dark': (15, 15, 25),
    'fg_green': (0, 255, 128),
    'fg_amber': (255, 176, 0),
    'fg_white': (220, 220, 220),
    'fg_blue': (100, 180, 255),
    'status_bg': (20, 20, 35),
    'text': (200, 200, 200),
    'text_dim': (120, 120, 140),
}


@dataclass(frozen=True)
class EmulatorConfig:
    scale: int = 12                     # Display scale factor
    clock_hz: int = 500                 # Instructions per second
    frame_hz: int = 60                  # Render / input rate
    fg_color: Tuple[int, int, int] = COLORS['fg_green']
    bg_color: Tuple[int, int, int] = COLORS['bg_dark']
    bloom_strength: float = 0.55        # Glow intensity (0.0-1.0)
    blur_radius: int = 1                # Box blur passes (0-3)
    show_debug: bool = False
    seed: Optional[int] = None          # CXNN random seed

    @property
    def cycles_per_frame(self) -> int:
        return max(1, self.clock_hz // self.frame_hz)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "EmulatorConfig":
        """
        Build a config from a JSON object, keeping defaults for missing keys.

        Raises:
            ConfigError: unreadable file, bad JSON, unknown key or bad value
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Can't read config {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must be a JSON object")
        return cls().with_overrides(data)

    def with_overrides(self, data: dict) -> "EmulatorConfig":
        known = {f.name for f in fields(self)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        values = dict(data)
        for key in ('fg_color', 'bg_color'):
            if key in values:
                values[key] = _parse_color(key, values[key])

        config = replace(self, **values)
        if config.scale < 1 or config.clock_hz < 1 or config.frame_hz < 1:
            raise ConfigError("scale, clock_hz and frame_hz must be positive")
        if not 0.0 <= config.bloom_strength <= 1.0:
            raise ConfigError("bloom_strength must be between 0.0 and 1.0")
        return config


def _parse_color(key: str, value) -> Tuple[int, int, int]:
    if isinstance(value, str) and value in COLORS:
        return COLORS[value]
    if (isinstance(value, (list, tuple)) and len(value) == 3
            and all(isinstance(c, int) and 0 <= c <= 255 for c in value)):
        return tuple(value)
    raise ConfigError(f"{key} must be a color name or [r, g, b], got {value!r}")
