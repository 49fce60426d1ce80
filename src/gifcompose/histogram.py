"""Colour histograms for palette quantization.

A histogram is a :class:`ColorBucket`: the distinct RGB colours of an image
with the number of pixels carrying each one. Colours are kept sorted by their
packed 24-bit key (``R << 16 | G << 8 | B``). That order is only a lookup key
and never drives a quantization decision.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple

import numpy as np
from PIL import Image


class Color(NamedTuple):
    """An 8-bit RGB colour."""

    red: int
    green: int
    blue: int

    def pack(self) -> int:
        return (self.red << 16) | (self.green << 8) | self.blue

    @classmethod
    def unpack(cls, key: int) -> Color:
        key = int(key)
        return cls((key >> 16) & 0xFF, (key >> 8) & 0xFF, key & 0xFF)


BLACK = Color(0, 0, 0)


def pack_colors(rgb: np.ndarray) -> np.ndarray:
    """Pack an ``(..., 3)`` uint8 array into 24-bit integer keys."""
    rgb = rgb.astype(np.uint32, copy=False)
    return (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]


def unpack_colors(keys: np.ndarray) -> np.ndarray:
    """Inverse of :func:`pack_colors`, returns an ``(n, 3)`` uint8 array."""
    keys = np.asarray(keys, dtype=np.uint32)
    return np.stack(
        [(keys >> 16) & 0xFF, (keys >> 8) & 0xFF, keys & 0xFF], axis=-1
    ).astype(np.uint8)


def rgb_array(image: Image.Image | np.ndarray) -> np.ndarray:
    """Return the ``(H, W, 3)`` uint8 RGB pixels of an image, dropping alpha.

    Args:
        image: PIL image in any mode, or an ``(H, W, 3)`` / ``(H, W, 4)`` array

    Returns:
        RGB pixel array

    Raises:
        ValueError: If an array does not have RGB(A) shape
    """
    if isinstance(image, Image.Image):
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA")
        arr = np.asarray(image)
    else:
        arr = np.asarray(image)

    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(f"Expected an (H, W, 3|4) pixel array, got shape {arr.shape}")

    return np.ascontiguousarray(arr[..., :3], dtype=np.uint8)


@dataclass
class ColorBucket:
    """Multiset of colours with occurrence counts.

    ``colors`` holds unique rows sorted by packed key, ``counts`` the matching
    pixel counts. The sum of ``counts`` is the pixel count the bucket stands
    for.
    """

    colors: np.ndarray = field(default_factory=lambda: np.empty((0, 3), dtype=np.uint8))
    counts: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.int64))

    def __post_init__(self) -> None:
        self.colors = np.asarray(self.colors, dtype=np.uint8).reshape(-1, 3)
        self.counts = np.asarray(self.counts, dtype=np.int64).reshape(-1)
        if len(self.colors) != len(self.counts):
            raise ValueError(
                f"Got {len(self.colors)} colors but {len(self.counts)} counts"
            )

    @classmethod
    def from_mapping(cls, mapping: dict[Color, int]) -> ColorBucket:
        """Build a bucket from a ``Color -> count`` mapping."""
        items = sorted((Color(*c).pack(), n) for c, n in mapping.items())
        keys = np.array([k for k, _ in items], dtype=np.uint32)
        counts = np.array([n for _, n in items], dtype=np.int64)
        return cls(unpack_colors(keys), counts)

    def __len__(self) -> int:
        return len(self.colors)

    def __contains__(self, color: object) -> bool:
        if not isinstance(color, tuple) or len(color) != 3:
            return False
        return bool(np.any(np.all(self.colors == np.asarray(color, dtype=np.uint8), axis=1)))

    @property
    def is_empty(self) -> bool:
        return len(self.colors) == 0

    @property
    def total(self) -> int:
        return int(self.counts.sum())

    def keys(self) -> np.ndarray:
        return pack_colors(self.colors)

    def as_dict(self) -> dict[Color, int]:
        return {
            Color(int(r), int(g), int(b)): int(n)
            for (r, g, b), n in zip(self.colors, self.counts)
        }

    def mean_color(self) -> Color:
        """Count-weighted mean colour, truncated; black for an empty bucket."""
        if self.is_empty:
            return BLACK
        weighted = (self.colors.astype(np.int64) * self.counts[:, None]).sum(axis=0)
        r, g, b = (int(v) for v in weighted // self.total)
        return Color(r, g, b)

    def with_color(self, color: Color, count: int) -> ColorBucket:
        """Return a copy holding ``color`` as well, kept in key order."""
        keys = np.append(self.keys(), np.uint32(color.pack()))
        counts = np.append(self.counts, count)
        order = np.argsort(keys, kind="stable")
        return ColorBucket(unpack_colors(keys[order]), counts[order])

    def without_color(self, color: Color) -> ColorBucket:
        keep = self.keys() != color.pack()
        return ColorBucket(self.colors[keep], self.counts[keep])


def build_histogram(image: Image.Image | np.ndarray) -> ColorBucket:
    """Count every pixel of ``image`` by its RGB colour.

    Args:
        image: PIL image or RGB(A) pixel array

    Returns:
        ColorBucket whose counts sum to the image's pixel count
    """
    keys = pack_colors(rgb_array(image)).reshape(-1)
    unique_keys, counts = np.unique(keys, return_counts=True)
    return ColorBucket(unpack_colors(unique_keys), counts.astype(np.int64))
