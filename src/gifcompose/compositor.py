"""Frame reconstruction from raw GIF sub-images.

A GIF stores each animation step as a sub-image that only covers part of the
logical screen. :class:`FrameCompositor` replays the records of a
:class:`~gifcompose.codec.GifReader` and paints every sub-image onto the
running canvas (the key), honouring transparency, interlacing and the
"restore to previous" disposal mode.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

import numpy as np
from PIL import Image

from .codec import (
    GRAPHICS_EXT_FUNC_CODE,
    DisposalMode,
    GifReader,
    GraphicsControl,
    ImageDescriptor,
    RecordType,
)
from .config import DEFAULT_CODEC_CONFIG, CodecConfig
from .error_handling import DecodeError

logger = logging.getLogger(__name__)

INT_MAX = 2**31 - 1


@dataclass
class Frame:
    """A fully composited animation frame."""

    image: Image.Image
    delay: int
    disposal: DisposalMode = DisposalMode.UNSPECIFIED


class KeyTransition(Enum):
    """How a decoded sub-image affects the canvas the next one is drawn on."""

    # first image: becomes the canvas as-is
    REPLACE = "replace"
    # composited result becomes the next canvas
    CARRY_FORWARD = "carry_forward"
    # next image is drawn on the canvas from before this one
    REVERT = "revert"

    @classmethod
    def for_disposal(cls, disposal: DisposalMode) -> KeyTransition:
        if disposal is DisposalMode.RESTORE_PREVIOUS:
            return cls.REVERT
        return cls.CARRY_FORWARD


def argb_palette(color_table: np.ndarray, transparent_index: int = -1) -> np.ndarray:
    """Build a 256-entry RGBA palette from a GIF colour table.

    The transparent index gets alpha 0, every other entry alpha 0xFF. Entries
    past the end of the table are opaque black.
    """
    palette = np.zeros((256, 4), dtype=np.uint8)
    palette[:, 3] = 0xFF
    count = min(len(color_table), 256)
    palette[:count, :3] = color_table[:count]
    if 0 <= transparent_index < 256:
        palette[transparent_index, 3] = 0
    return palette


class FrameCompositor:
    """Turns the records of a GIF stream into composited frames."""

    def __init__(self, reader: GifReader, config: CodecConfig = DEFAULT_CODEC_CONFIG):
        self.reader = reader
        self.config = config
        self.screen = reader.screen

        self.delay = -1
        self.disposal = DisposalMode.UNSPECIFIED
        self.transparent_index = -1
        self.key: Image.Image | None = None
        self.frame_count = 0

    def validate(self, descriptor: ImageDescriptor) -> None:
        """Reject sub-images that do not fit on the logical screen."""
        width, height = descriptor.width, descriptor.height
        if (
            width <= 0
            or height <= 0
            or width > INT_MAX // height
            or descriptor.left + width > self.screen.width
            or descriptor.top + height > self.screen.height
        ):
            raise DecodeError(
                f"Invalid image geometry {width}x{height}+{descriptor.left}+{descriptor.top} "
                f"on {self.screen.width}x{self.screen.height} screen",
                context={"frame": self.frame_count},
            )

    def read_indices(self, descriptor: ImageDescriptor) -> np.ndarray:
        """Read the sub-image's palette indices, undoing interlacing."""
        indices = np.full(
            (descriptor.height, descriptor.width),
            self.screen.background_index,
            dtype=np.uint8,
        )
        lines = self.reader.lines()

        if descriptor.interlace:
            rows = (
                row
                for offset, jump in zip(self.config.INTERLACE_OFFSETS, self.config.INTERLACE_JUMPS)
                for row in range(offset, descriptor.height, jump)
            )
        else:
            rows = iter(range(descriptor.height))

        for row, line in zip(rows, lines):
            indices[row] = line
        return indices

    def render(self, descriptor: ImageDescriptor, indices: np.ndarray) -> Image.Image:
        """Resolve indices to RGBA pixels through the applicable colour table."""
        color_table = descriptor.color_table
        if color_table is None:
            color_table = self.screen.color_table
        if color_table is None:
            raise DecodeError(
                "Image has neither a local nor a global color table",
                context={"frame": self.frame_count},
            )

        palette = argb_palette(color_table, self.transparent_index)
        return Image.fromarray(palette[indices])

    def composite(self, descriptor: ImageDescriptor, image: Image.Image) -> Image.Image:
        """Paint a sub-image onto the key and advance the key."""
        offset = (descriptor.left, descriptor.top)

        if self.key is None:
            transition = KeyTransition.REPLACE
            canvas = Image.new("RGBA", (self.screen.width, self.screen.height), (0, 0, 0, 0))
            canvas.paste(image, offset)
        else:
            transition = KeyTransition.for_disposal(self.disposal)
            canvas = self.key.copy()
            canvas.alpha_composite(image, dest=offset)

        if transition is not KeyTransition.REVERT:
            self.key = canvas

        logger.debug(
            f"Frame {self.frame_count}: {descriptor.width}x{descriptor.height}"
            f"+{descriptor.left}+{descriptor.top}, key {transition.value}"
        )
        return canvas

    def apply_extension(self) -> None:
        extension = self.reader.extension()
        if extension.code != GRAPHICS_EXT_FUNC_CODE or not extension.blocks:
            return

        control = GraphicsControl.from_bytes(extension.blocks[0])
        self.delay = control.delay_cs * self.config.DELAY_UNIT_MS
        self.disposal = control.disposal
        self.transparent_index = control.transparent_index

    def frames(self) -> Iterator[Frame]:
        """Yield one composited frame per image descriptor until the trailer.

        Raises:
            DecodeError: On malformed records, invalid geometry or missing
                colour tables
        """
        self.frame_count = 0

        while True:
            record = self.reader.record_type()

            if record is RecordType.IMAGE_DESC:
                descriptor = self.reader.image_descriptor()
                self.validate(descriptor)
                indices = self.read_indices(descriptor)
                self.frame_count += 1
                image = self.render(descriptor, indices)
                yield Frame(
                    image=self.composite(descriptor, image),
                    delay=self.delay,
                    disposal=self.disposal,
                )
            elif record is RecordType.EXTENSION:
                self.apply_extension()
            else:
                return
