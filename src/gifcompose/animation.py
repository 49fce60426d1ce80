"""Loading and writing animated GIFs as sequences of composited frames."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import BinaryIO

from PIL import Image

from .codec import DisposalMode, GifReader, GifWriter, GraphicsControl
from .compositor import FrameCompositor
from .config import (
    DEFAULT_CODEC_CONFIG,
    DEFAULT_FRAME_STORE_CONFIG,
    DEFAULT_QUANTIZER_CONFIG,
    CodecConfig,
    FrameStoreConfig,
    QuantizerConfig,
)
from .delta import DeltaEncoder, WriteRequest, validate_sequences
from .error_handling import (
    DecodeError,
    EncodeError,
    GifComposeError,
    error_context,
    handle_error,
    log_info_with_context,
)
from .frame_store import FrameStore
from .io import atomic_write
from .quantize import MedianCutQuantizer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]
FrameSource = str | Path | Image.Image


def load_frame(source: FrameSource) -> Image.Image:
    """Open a frame given as an image or a path to a still image, as RGBA."""
    if isinstance(source, Image.Image):
        return source.convert("RGBA")
    with Image.open(source) as image:
        return image.convert("RGBA")


def percent(done: int, total: int) -> int:
    return int(done / total * 100 + 0.5)


class Gif:
    """An animated GIF held as composited frames plus per-frame delays.

    Decoded frames live in a temporary :class:`FrameStore` owned by this
    instance; :meth:`load` and :meth:`clean` discard whatever was there.
    Neither :meth:`load` nor :meth:`write` raises: failures are logged and
    reported as ``False``.

    Example:
        with Gif() as gif:
            if gif.load("in.gif"):
                frames = [gif.frame(i) for i in range(gif.count())]
                gif.write("out.gif", frames, gif.delays())
    """

    def __init__(
        self,
        store_config: FrameStoreConfig = DEFAULT_FRAME_STORE_CONFIG,
        codec_config: CodecConfig = DEFAULT_CODEC_CONFIG,
        quantizer_config: QuantizerConfig = DEFAULT_QUANTIZER_CONFIG,
        on_progress: ProgressCallback | None = None,
    ):
        self.codec_config = codec_config
        self.quantizer_config = quantizer_config
        self.on_progress = on_progress
        self.store = FrameStore(store_config)
        self._count = 0
        self._delays: list[int] = []

    def __enter__(self) -> Gif:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.clean()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------
    def load(self, path: str | Path) -> bool:
        """Decode a GIF file into composited frames.

        Args:
            path: GIF file to read

        Returns:
            True on success. On failure all state is discarded, as if nothing
            had been loaded.
        """
        self.clean()
        path = Path(path)
        context = {"path": str(path)}
        log_info_with_context("Loading GIF", context, logger)

        try:
            with error_context("load GIF", DecodeError, context=context):
                with open(path, "rb") as fp:
                    reader = GifReader(fp, self.codec_config)
                    compositor = FrameCompositor(reader, self.codec_config)
                    for frame in compositor.frames():
                        self._count += 1
                        self.store.save(self._count, frame.image)
                        self._delays.append(frame.delay)
        except GifComposeError as e:
            handle_error(e, "load GIF", DecodeError, context=context,
                         logger=logger, reraise=False)
            self.clean()
            return False

        logger.info(f"Loaded {self._count} frames from {path}")
        return True

    def count(self) -> int:
        return self._count

    def delay(self, index: int) -> int:
        """Delay of frame ``index`` (0-based) in milliseconds, -1 if unset."""
        return self._delays[index]

    def delays(self) -> list[int]:
        return list(self._delays)

    def frame(self, index: int) -> Image.Image:
        """Composited RGBA image of frame ``index`` (0-based).

        Raises:
            IndexError: If no such frame was loaded
        """
        if not 0 <= index < self._count:
            raise IndexError(f"Frame index {index} out of range (count {self._count})")
        return self.store.load(index + 1)

    def file_names(self) -> list[Path]:
        """Paths of the stored frame images in frame order."""
        if not self._count:
            return []
        return self.store.paths(self._count)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------
    def write(
        self,
        path: str | Path,
        frames: Sequence[FrameSource],
        delays: Sequence[int],
        loop_count: int | None = None,
        progress: ProgressCallback | None = None,
    ) -> bool:
        """Encode frames into an animated GIF.

        Args:
            path: Output file; only replaced once the whole GIF is written
            frames: Frame images or paths to still images, in order
            delays: Display time of each frame in milliseconds
            loop_count: Number of loops, 0 for infinite
            progress: Called with the percentage of frames processed

        Returns:
            True if the file was written
        """
        path = Path(path)
        if loop_count is None:
            loop_count = self.codec_config.DEFAULT_LOOP_COUNT
        context = {"path": str(path), "frames": len(frames)}

        try:
            validate_sequences(frames, delays)
            log_info_with_context("Writing GIF", context, logger)
            with error_context("write GIF", EncodeError, context=context):
                with atomic_write(path) as fp:
                    self._write_stream(fp, frames, delays, loop_count, progress)
        except GifComposeError as e:
            handle_error(e, "write GIF", EncodeError, context=context,
                         logger=logger, reraise=False)
            return False

        logger.info(f"Wrote {len(frames)} frames to {path}")
        return True

    def _notify(self, value: int, progress: ProgressCallback | None) -> None:
        logger.debug(f"Write progress {value}%")
        for callback in (self.on_progress, progress):
            if callback is not None:
                callback(value)

    def _put_request(self, writer: GifWriter, request: WriteRequest) -> None:
        unit = self.codec_config.DELAY_UNIT_MS
        control = GraphicsControl(
            delay_cs=min(max(request.delay // unit, 0), 0xFFFF),
            disposal=DisposalMode.DO_NOT_DISPOSE,
        )
        writer.put_graphics_control(control)
        writer.put_image(
            request.rect.x,
            request.rect.y,
            request.image.indices,
            request.image.palette,
        )

    def _write_stream(
        self,
        fp: BinaryIO,
        frames: Sequence[FrameSource],
        delays: Sequence[int],
        loop_count: int,
        progress: ProgressCallback | None,
    ) -> None:
        total = len(frames)
        self._notify(0, progress)

        encoder = DeltaEncoder(
            colors=self.quantizer_config.MAX_COLORS,
            quantizer=MedianCutQuantizer(self.quantizer_config),
        )
        first = encoder.start(load_frame(frames[0]), delays[0])

        writer = GifWriter(fp, self.codec_config)
        width, height = encoder.size
        writer.put_screen_descriptor(width, height, first.image.palette)
        writer.put_loop_extension(loop_count)
        self._notify(percent(1, total), progress)

        # each request is held back until the next one exists, so the delay
        # of trailing unchanged frames can still be added to it
        pending = first
        for i in range(1, total):
            request = encoder.add(load_frame(frames[i]), delays[i])
            if request is not None:
                self._put_request(writer, pending)
                pending = request
            self._notify(percent(i + 1, total), progress)

        pending.delay += encoder.pending_delay
        self._put_request(writer, pending)
        writer.close()
        self._notify(100, progress)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------
    def clean(self) -> None:
        """Discard all frames and delays and remove the frame store."""
        self._count = 0
        self._delays = []
        self.store.clear()

    close = clean
