"""Configuration settings for gifcompose."""

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class QuantizerConfig:
    """Configuration for median-cut palette quantization."""

    # Palette size used when encoding frames (GIF colour tables hold 256 at most)
    MAX_COLORS: int = 256

    # Per-channel weights applied to channel ranges when picking a split axis
    LUMA_WEIGHTS: tuple[float, float, float] = (0.299, 0.587, 0.114)

    def __post_init__(self) -> None:
        if self.MAX_COLORS < 2 or self.MAX_COLORS > 256:
            raise ValueError(
                f"MAX_COLORS must be between 2 and 256, got {self.MAX_COLORS}"
            )

        if len(self.LUMA_WEIGHTS) != 3:
            raise ValueError(
                f"LUMA_WEIGHTS needs one weight per RGB channel, got {self.LUMA_WEIGHTS}"
            )
        if any(w < 0 for w in self.LUMA_WEIGHTS):
            raise ValueError(
                f"All weights must be non-negative, got {self.LUMA_WEIGHTS}"
            )


@dataclass
class CodecConfig:
    """Configuration for GIF record reading and writing."""

    # Row offset/stride of the four interlace passes
    INTERLACE_OFFSETS: tuple[int, ...] = (0, 4, 2, 1)
    INTERLACE_JUMPS: tuple[int, ...] = (8, 8, 4, 2)

    # 0 loops forever
    DEFAULT_LOOP_COUNT: int = 0

    # Graphics Control delays are stored in hundredths of a second
    DELAY_UNIT_MS: int = 10

    def __post_init__(self) -> None:
        if len(self.INTERLACE_OFFSETS) != len(self.INTERLACE_JUMPS):
            raise ValueError("INTERLACE_OFFSETS and INTERLACE_JUMPS must pair up")
        if any(j <= 0 for j in self.INTERLACE_JUMPS):
            raise ValueError("INTERLACE_JUMPS must be positive")
        if not 0 <= self.DEFAULT_LOOP_COUNT <= 0xFFFF:
            raise ValueError(
                f"DEFAULT_LOOP_COUNT must fit in 16 bits, got {self.DEFAULT_LOOP_COUNT}"
            )
        if self.DELAY_UNIT_MS <= 0:
            raise ValueError("DELAY_UNIT_MS must be positive")


@dataclass
class FrameStoreConfig:
    """Configuration for the temporary frame store with environment variable overrides."""

    # Parent directory of the per-animation temporary directory.
    # None uses the system temporary location.
    # Override with: GIFCOMPOSE_TEMP_DIR
    TEMP_DIR: Path | None = None

    # Prefix of the temporary directory name.
    # Override with: GIFCOMPOSE_TEMP_PREFIX
    TEMP_PREFIX: str = "gifcompose_"

    # Still-image format decoded frames are stored in
    FRAME_FORMAT: str = "PNG"

    def __post_init__(self) -> None:
        """Apply environment variable overrides after initialization."""
        env_temp_dir = os.getenv("GIFCOMPOSE_TEMP_DIR")
        if env_temp_dir:
            self.TEMP_DIR = Path(env_temp_dir)

        env_prefix = os.getenv("GIFCOMPOSE_TEMP_PREFIX")
        if env_prefix:
            self.TEMP_PREFIX = env_prefix

        if self.TEMP_DIR is not None:
            self.TEMP_DIR = Path(self.TEMP_DIR)

        if self.FRAME_FORMAT.upper() not in {"PNG", "TIFF", "WEBP"}:
            raise ValueError(
                f"FRAME_FORMAT must be a lossless format with alpha, got {self.FRAME_FORMAT}"
            )

    @property
    def suffix(self) -> str:
        return "." + self.FRAME_FORMAT.lower()


DEFAULT_QUANTIZER_CONFIG = QuantizerConfig()
DEFAULT_CODEC_CONFIG = CodecConfig()
DEFAULT_FRAME_STORE_CONFIG = FrameStoreConfig()
