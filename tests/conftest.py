"""Shared fixtures: small animations built with Pillow or record by record."""

from io import BytesIO
from pathlib import Path

import numpy as np
import pytest
from PIL import Image, ImageDraw

from gifcompose.codec import DisposalMode, GifReader, GifWriter, GraphicsControl

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
WHITE = (255, 255, 255)
BLACK = (0, 0, 0)

# index order of the palette used by the hand-built GIFs
PALETTE = [RED, BLUE, GREEN, BLACK]


def solid(size, color, mode="RGB"):
    return Image.new(mode, size, color)


def rgb(image):
    """Pixels of an image as an (H, W, 3) array."""
    return np.array(image.convert("RGBA"))[..., :3]


def build_gif(screen_size, images, global_table=PALETTE):
    """Assemble a GIF in memory.

    ``images`` is a list of dicts with ``indices`` and optional ``left``,
    ``top``, ``control`` (GraphicsControl), ``table`` and ``interlace``.
    """
    buf = BytesIO()
    writer = GifWriter(buf)
    writer.put_screen_descriptor(*screen_size, global_table)
    for entry in images:
        if entry.get("control") is not None:
            writer.put_graphics_control(entry["control"])
        writer.put_image(
            entry.get("left", 0),
            entry.get("top", 0),
            np.asarray(entry["indices"], dtype=np.uint8),
            entry.get("table"),
            interlace=entry.get("interlace", False),
        )
    writer.close()
    return buf.getvalue()


def reader_for(data: bytes) -> GifReader:
    return GifReader(BytesIO(data))


@pytest.fixture
def frames_abc():
    """Three 12x10 frames: a red field, then a blue square, then a green one."""
    a = solid((12, 10), RED)

    b = a.copy()
    ImageDraw.Draw(b).rectangle((2, 2, 5, 5), fill=BLUE)

    c = b.copy()
    ImageDraw.Draw(c).rectangle((7, 4, 10, 8), fill=GREEN)
    return [a, b, c]


@pytest.fixture
def animated_gif(tmp_path, frames_abc) -> Path:
    """3-frame GIF written by Pillow, 100 ms per frame, "do not dispose"."""
    path = tmp_path / "abc.gif"
    first, *rest = frames_abc
    first.save(
        path,
        save_all=True,
        append_images=rest,
        duration=100,
        loop=0,
        disposal=1,
    )
    return path


@pytest.fixture
def restore_previous_gif() -> bytes:
    """4x4 red canvas, a blue dot shown once, then a green dot on the red canvas."""
    return build_gif(
        (4, 4),
        [
            {
                "indices": np.zeros((4, 4)),
                "control": GraphicsControl(delay_cs=5, disposal=DisposalMode.DO_NOT_DISPOSE),
            },
            {
                "indices": [[1]],
                "control": GraphicsControl(delay_cs=5, disposal=DisposalMode.RESTORE_PREVIOUS),
            },
            {
                "indices": [[2]],
                "left": 3,
                "top": 3,
                "control": GraphicsControl(delay_cs=5, disposal=DisposalMode.DO_NOT_DISPOSE),
            },
        ],
    )
