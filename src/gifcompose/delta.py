"""Delta encoding of animation frames.

Output size of a GIF is dominated by the pixel data of its frames, so after
the first frame only the rectangle that changed since the previous frame is
encoded. Frames identical to their predecessor produce no image at all;
their display time is added to the next frame that does change.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np
from PIL import Image

from .config import DEFAULT_QUANTIZER_CONFIG
from .error_handling import ConfigurationError
from .quantize import IndexedImage, MedianCutQuantizer

logger = logging.getLogger(__name__)


class Rect(NamedTuple):
    x: int
    y: int
    width: int
    height: int

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


EMPTY_RECT = Rect(0, 0, 0, 0)


@dataclass
class WriteRequest:
    """One sub-image to write: quantized pixels, placement and delay (ms)."""

    image: IndexedImage
    rect: Rect
    delay: int


def rgba_array(image: Image.Image | np.ndarray) -> np.ndarray:
    """Return the ``(H, W, 4)`` uint8 RGBA pixels of an image."""
    if isinstance(image, Image.Image):
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return np.array(image, dtype=np.uint8)

    arr = np.asarray(image, dtype=np.uint8)
    if arr.ndim == 3 and arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2] + (1,), 0xFF, dtype=np.uint8)
        arr = np.concatenate([arr, alpha], axis=2)
    if arr.ndim != 3 or arr.shape[2] != 4:
        raise ValueError(f"Expected an (H, W, 3|4) pixel array, got shape {arr.shape}")
    return arr


def diff_image(
    key: Image.Image | np.ndarray, image: Image.Image | np.ndarray
) -> tuple[np.ndarray | None, Rect]:
    """Find the smallest rectangle outside of which ``image`` equals ``key``.

    Args:
        key: Reference canvas
        image: New canvas of the same size

    Returns:
        ``(pixels, rect)`` where ``pixels`` is the RGBA crop of ``image`` for
        ``rect``; ``(None, Rect(0, 0, 0, 0))`` when the images are identical

    Raises:
        ValueError: If the two images differ in size
    """
    key_px = rgba_array(key)
    image_px = rgba_array(image)
    if key_px.shape != image_px.shape:
        raise ValueError(
            f"Cannot diff {key_px.shape[1]}x{key_px.shape[0]} against "
            f"{image_px.shape[1]}x{image_px.shape[0]}"
        )

    changed = np.any(key_px != image_px, axis=2)
    columns = np.flatnonzero(changed.any(axis=0))
    if columns.size == 0:
        return None, EMPTY_RECT
    rows = np.flatnonzero(changed.any(axis=1))

    x, y = int(columns[0]), int(rows[0])
    rect = Rect(x, y, int(columns[-1]) - x + 1, int(rows[-1]) - y + 1)
    return image_px[y:y + rect.height, x:x + rect.width].copy(), rect


def center_on_canvas(frame: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Paint ``frame`` centred on an opaque black canvas of ``size``.

    Along an axis where the frame is not smaller than the canvas it is
    placed at 0 and cropped.
    """
    width, height = size
    frame = frame.convert("RGBA")
    frame = frame.crop((0, 0, min(frame.width, width), min(frame.height, height)))

    canvas = Image.new("RGBA", size, (0, 0, 0, 255))
    canvas.alpha_composite(
        frame, dest=((width - frame.width) // 2, (height - frame.height) // 2)
    )
    return canvas


class DeltaEncoder:
    """Turns full animation frames into a minimal list of write requests.

    Usage:
        encoder = DeltaEncoder()
        requests = [encoder.start(frames[0], delays[0])]
        for frame, delay in zip(frames[1:], delays[1:]):
            request = encoder.add(frame, delay)
            if request is not None:
                requests.append(request)
    """

    def __init__(
        self,
        colors: int = DEFAULT_QUANTIZER_CONFIG.MAX_COLORS,
        quantizer: MedianCutQuantizer | None = None,
    ):
        self.colors = colors
        self.quantizer = quantizer or MedianCutQuantizer()
        self.key: np.ndarray | None = None
        self.pending_delay = 0

    @property
    def size(self) -> tuple[int, int]:
        if self.key is None:
            raise ConfigurationError("Encoder has not been started with a first frame")
        return int(self.key.shape[1]), int(self.key.shape[0])

    def _quantize(self, pixels: Image.Image | np.ndarray) -> IndexedImage:
        indexed = self.quantizer.quantize(pixels, self.colors)
        if indexed is None:
            raise ConfigurationError(f"Cannot quantize to {self.colors} colors")
        return indexed

    def start(self, frame: Image.Image, delay: int) -> WriteRequest:
        """Emit the first frame in full and make it the key."""
        self.key = rgba_array(frame)
        self.pending_delay = 0
        width, height = self.size
        return WriteRequest(
            image=self._quantize(self.key),
            rect=Rect(0, 0, width, height),
            delay=delay,
        )

    def add(self, frame: Image.Image, delay: int) -> WriteRequest | None:
        """Emit the changed region of ``frame``, or None if nothing changed.

        The delay of an unchanged frame is carried into the next request.
        """
        size = self.size
        if frame.size != size:
            frame = center_on_canvas(frame, size)

        current = rgba_array(frame)
        delay += self.pending_delay
        pixels, rect = diff_image(self.key, current)

        if rect.is_empty:
            self.pending_delay = delay
            logger.debug(f"Frame unchanged, carrying {delay} ms forward")
            return None

        self.pending_delay = 0
        self.key = current
        return WriteRequest(image=self._quantize(pixels), rect=rect, delay=delay)

    def encode(
        self, frames: Sequence[Image.Image], delays: Sequence[int]
    ) -> list[WriteRequest]:
        """Encode a whole animation.

        Delay still pending after the last frame is added to the last
        request so the total playback time is kept.

        Raises:
            ConfigurationError: If the sequences are empty or differ in length
        """
        validate_sequences(frames, delays)

        requests = [self.start(frames[0], delays[0])]
        for frame, delay in zip(frames[1:], delays[1:]):
            request = self.add(frame, delay)
            if request is not None:
                requests.append(request)

        requests[-1].delay += self.pending_delay
        self.pending_delay = 0
        return requests


def validate_sequences(frames: Sequence, delays: Sequence) -> None:
    """Check that frames and delays are non-empty and pair up one to one."""
    if not frames or len(frames) != len(delays):
        raise ConfigurationError(
            "Count of frames and delays are not the same, or list of frames is empty",
            context={"frames": len(frames), "delays": len(delays)},
        )
