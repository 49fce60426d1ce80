"""Median-cut palette quantization.

The colour cube of an image is partitioned recursively: every round splits
each bucket in two at the midpoint of its most significant channel, where
significance is the channel's value range weighted by its luma coefficient.
After ``log2(k)`` rounds there are exactly ``k`` leaf buckets and each leaf
contributes one palette entry, the count-weighted mean of its colours.

Leaves left empty by the splits are repaired by handing them the most
frequent colours of leaves that hold more than one colour, so small-palette
images do not end up with several black entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image

from .config import DEFAULT_QUANTIZER_CONFIG, QuantizerConfig
from .histogram import (
    Color,
    ColorBucket,
    build_histogram,
    pack_colors,
    rgb_array,
)

logger = logging.getLogger(__name__)

RED, GREEN, BLUE = 0, 1, 2


@dataclass
class IndexedImage:
    """A grid of palette indices together with its palette."""

    indices: np.ndarray
    palette: list[Color]

    @property
    def width(self) -> int:
        return int(self.indices.shape[1])

    @property
    def height(self) -> int:
        return int(self.indices.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def palette_bytes(self) -> bytes:
        """Flat ``RGBRGB...`` colour table."""
        return bytes(channel for color in self.palette for channel in color)

    def to_image(self) -> Image.Image:
        """Return the image as a Pillow ``"P"`` image."""
        if len(self.palette) > 256:
            raise ValueError("Pillow palette images hold at most 256 colors")
        image = Image.frombytes("P", self.size, self.indices.astype(np.uint8).tobytes())
        image.putpalette(self.palette_bytes())
        return image


def next_power_of_two(k: int) -> int:
    """Smallest power of two that is >= ``k`` and >= 2."""
    n = 2
    while n < k:
        n <<= 1
    return n


def _weighted_range(low: int, high: int, weight: float) -> int:
    # round half away from zero; ranges are never negative
    return int((high - low) * weight + 0.5)


class MedianCutQuantizer:
    """Reduces an RGB image to a power-of-two palette by median cut."""

    def __init__(self, config: QuantizerConfig = DEFAULT_QUANTIZER_CONFIG):
        self.config = config

    def longest_side(self, bucket: ColorBucket) -> tuple[int, int, int]:
        """Pick the split axis of a non-empty bucket.

        Returns:
            ``(channel, lowest, highest)`` of the channel with the largest
            luma-weighted range. Exact ties go to the later channel in R, G, B
            order.
        """
        lows = bucket.colors.min(axis=0)
        highs = bucket.colors.max(axis=0)
        weighted = [
            _weighted_range(int(lows[c]), int(highs[c]), self.config.LUMA_WEIGHTS[c])
            for c in (RED, GREEN, BLUE)
        ]
        channel = max((RED, GREEN, BLUE), key=lambda c: (weighted[c], c))
        return channel, int(lows[channel]), int(highs[channel])

    def split(self, bucket: ColorBucket) -> tuple[ColorBucket, ColorBucket]:
        """Split a bucket at the midpoint of its longest side.

        Colours strictly below the midpoint go left, the rest go right. An
        empty bucket yields two empty buckets.
        """
        if bucket.is_empty:
            return ColorBucket(), ColorBucket()

        channel, lowest, highest = self.longest_side(bucket)
        middle = (highest - lowest) // 2 + lowest
        below = bucket.colors[:, channel] < middle

        left = ColorBucket(bucket.colors[below], bucket.counts[below])
        right = ColorBucket(bucket.colors[~below], bucket.counts[~below])
        return left, right

    def partition(self, histogram: ColorBucket, k: int) -> list[ColorBucket]:
        """Split ``histogram`` into exactly ``k`` leaves (``k`` a power of two)."""
        leaves = [histogram]
        n = k
        while n != 1:
            next_leaves: list[ColorBucket] = []
            for bucket in leaves:
                next_leaves.extend(self.split(bucket))
            leaves = next_leaves
            n //= 2
        return leaves

    def fill_empty_leaves(self, leaves: list[ColorBucket]) -> list[ColorBucket]:
        """Move frequent colours out of crowded leaves into empty ones.

        Candidates are all ``(count, color, leaf)`` triples, walked from the
        highest count down (among equal counts, later leaves first). A colour
        is moved only while its leaf still holds more than one colour.
        """
        empty = [i for i, leaf in enumerate(leaves) if leaf.is_empty]
        if not empty:
            return leaves

        candidates: list[tuple[int, Color, int]] = []
        for i, leaf in enumerate(leaves):
            for color, count in leaf.as_dict().items():
                candidates.append((count, color, i))
        candidates.sort(key=lambda triple: triple[0])

        leaves = list(leaves)
        for count, color, owner in reversed(candidates):
            if not empty:
                break
            if len(leaves[owner]) > 1:
                target = empty.pop(0)
                leaves[owner] = leaves[owner].without_color(color)
                leaves[target] = leaves[target].with_color(color, count)

        if empty:
            logger.debug(f"{len(empty)} palette slots left empty, source has too few colors")
        return leaves

    def assign(self, rgb: np.ndarray, leaves: list[ColorBucket]) -> np.ndarray:
        """Map every pixel to the index of the first leaf holding its colour.

        A colour found in no leaf maps to index 0.
        """
        lookup: dict[int, int] = {}
        for index, leaf in enumerate(leaves):
            for key in leaf.keys().tolist():
                lookup.setdefault(key, index)

        keys = pack_colors(rgb)
        unique_keys, inverse = np.unique(keys.reshape(-1), return_inverse=True)
        mapped = np.array([lookup.get(int(key), 0) for key in unique_keys], dtype=np.int64)

        dtype = np.uint8 if len(leaves) <= 256 else np.uint32
        return mapped[inverse].reshape(rgb.shape[:2]).astype(dtype)

    def quantize(self, image: Image.Image | np.ndarray, k: int) -> IndexedImage | None:
        """Reduce ``image`` to a palette of ``k`` colours.

        Args:
            image: PIL image or RGB(A) pixel array; alpha is ignored
            k: Requested palette size, rounded up to a power of two

        Returns:
            IndexedImage with exactly ``next_power_of_two(k)`` palette
            entries, or None when ``k`` is below 2
        """
        if k < 2:
            return None

        k = next_power_of_two(k)
        rgb = rgb_array(image)
        histogram = build_histogram(rgb)

        leaves = self.fill_empty_leaves(self.partition(histogram, k))
        palette = [leaf.mean_color() for leaf in leaves]
        indices = self.assign(rgb, leaves)

        logger.debug(
            f"Quantized {rgb.shape[1]}x{rgb.shape[0]} image with "
            f"{len(histogram)} colors to {k} palette entries"
        )
        return IndexedImage(indices=indices, palette=palette)


def quantize(
    image: Image.Image | np.ndarray,
    k: int,
    config: QuantizerConfig = DEFAULT_QUANTIZER_CONFIG,
) -> IndexedImage | None:
    """Quantize ``image`` to ``k`` colours with :class:`MedianCutQuantizer`."""
    return MedianCutQuantizer(config).quantize(image, k)
