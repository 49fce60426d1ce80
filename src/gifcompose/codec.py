"""Record-level GIF reading and writing.

The reader walks a GIF file one record at a time (image descriptor,
extension, trailer) the way the compositor needs it, and the writer emits the
same records. The layout follows the GIF89a specification:

* w3.org/Graphics/GIF/spec-gif89a.txt

LZW coding of pixel data is left to Pillow's GIF plugin. A compressed image
is decoded by wrapping it in a minimal single-image GIF without colour
tables, which Pillow opens as an ``"L"`` image whose values are the raw
palette indices. Encoding runs the opposite way: the indices are saved as an
``"L"`` GIF and the compressed data block is lifted out of the result.
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum, IntEnum
from io import BytesIO
from typing import BinaryIO

import numpy as np
from PIL import Image

from .config import DEFAULT_CODEC_CONFIG, CodecConfig
from .error_handling import DecodeError, EncodeError, error_context
from .histogram import Color

logger = logging.getLogger(__name__)

GIF_SIGNATURE = b"GIF"
GIF87A = b"87a"
GIF89A = b"89a"

IMAGE_SEPARATOR = 0x2C
EXTENSION_INTRODUCER = 0x21
TRAILER = 0x3B

PLAINTEXT_EXT_FUNC_CODE = 0x01
GRAPHICS_EXT_FUNC_CODE = 0xF9
COMMENT_EXT_FUNC_CODE = 0xFE
APPLICATION_EXT_FUNC_CODE = 0xFF

NETSCAPE_IDENTIFIER = b"NETSCAPE2.0"

MAX_SUB_BLOCK = 255
COLORS_MAX = 256


class RecordType(Enum):
    IMAGE_DESC = "image_desc"
    EXTENSION = "extension"
    TERMINATE = "terminate"


class DisposalMode(IntEnum):
    """What happens to a frame's area before the next frame is drawn."""

    UNSPECIFIED = 0
    DO_NOT_DISPOSE = 1
    RESTORE_BACKGROUND = 2
    RESTORE_PREVIOUS = 3

    @classmethod
    def from_bits(cls, value: int) -> DisposalMode:
        # values 4-7 are reserved by GIF89a and treated as unspecified
        try:
            return cls(value)
        except ValueError:
            return cls.UNSPECIFIED


@dataclass
class ScreenDescriptor:
    """Logical screen: canvas size, global colour table and background."""

    width: int
    height: int
    color_table: np.ndarray | None = None
    background_index: int = 0
    aspect_ratio: int = 0


@dataclass
class ImageDescriptor:
    """Placement and colour table of one sub-image."""

    left: int
    top: int
    width: int
    height: int
    interlace: bool = False
    color_table: np.ndarray | None = None


@dataclass
class GraphicsControl:
    """Graphics Control extension (delay, disposal, transparency)."""

    delay_cs: int = 0
    disposal: DisposalMode = DisposalMode.UNSPECIFIED
    transparent_index: int = -1
    user_input: bool = False

    @classmethod
    def from_bytes(cls, block: bytes) -> GraphicsControl:
        if len(block) < 4:
            raise DecodeError(
                f"Graphics Control block needs 4 bytes, got {len(block)}"
            )
        packed, delay, transparent = struct.unpack("<BHB", block[:4])
        return cls(
            delay_cs=delay,
            disposal=DisposalMode.from_bits((packed >> 2) & 0x07),
            transparent_index=transparent if packed & 0x01 else -1,
            user_input=bool(packed & 0x02),
        )

    def to_bytes(self) -> bytes:
        if not 0 <= self.delay_cs <= 0xFFFF:
            raise EncodeError(f"Delay of {self.delay_cs} cs does not fit in 16 bits")
        packed = (int(self.disposal) & 0x07) << 2
        if self.user_input:
            packed |= 0x02
        transparent = 0
        if self.transparent_index >= 0:
            packed |= 0x01
            transparent = self.transparent_index
        return struct.pack("<BHB", packed, self.delay_cs, transparent)


@dataclass
class Extension:
    """Any extension block: function code and its data sub-blocks."""

    code: int
    blocks: list[bytes]

    @property
    def data(self) -> bytes:
        return b"".join(self.blocks)


def color_table_bits(count: int) -> int:
    """Bits needed to index ``count`` colours (GIF tables hold 2 to 256)."""
    return max(1, (max(count, 1) - 1).bit_length())


def color_table_bytes(table: bytes | np.ndarray | Sequence[Color]) -> bytes:
    """Flatten a colour table and pad it to the next power-of-two size."""
    if isinstance(table, bytes):
        raw = table
    else:
        raw = np.asarray(table, dtype=np.uint8).reshape(-1).tobytes()

    if len(raw) % 3:
        raise EncodeError(f"Color table length {len(raw)} is not a multiple of 3")

    count = len(raw) // 3
    if count > COLORS_MAX:
        raise EncodeError(f"Color table holds {count} colors, GIF allows {COLORS_MAX}")

    size = 1 << color_table_bits(count)
    return raw + b"\0\0\0" * (size - count)


def read_sub_blocks(fp: BinaryIO) -> Iterator[bytes]:
    """Yield data sub-blocks up to and including the block terminator."""
    size = _read_exact(fp, 1)[0]
    while size:
        yield _read_exact(fp, size)
        size = _read_exact(fp, 1)[0]


def write_sub_blocks(fp: BinaryIO, data: bytes) -> None:
    """Write ``data`` as sub-blocks of at most 255 bytes plus terminator."""
    for start in range(0, len(data), MAX_SUB_BLOCK):
        chunk = data[start:start + MAX_SUB_BLOCK]
        fp.write(bytes([len(chunk)]))
        fp.write(chunk)
    fp.write(b"\0")


def _read_exact(fp: BinaryIO, size: int) -> bytes:
    data = fp.read(size)
    if len(data) < size:
        raise DecodeError(
            f"Unexpected end of file (wanted {size} bytes, got {len(data)})"
        )
    return data


def decode_pixels(width: int, height: int, min_code_size: int, data: bytes) -> np.ndarray:
    """Decompress LZW image data into an ``(height, width)`` index array.

    Rows come back in stored order; de-interlacing is up to the caller.
    """
    buf = BytesIO()
    buf.write(GIF_SIGNATURE + GIF89A)
    buf.write(struct.pack("<HHBBB", width, height, 0, 0, 0))
    buf.write(bytes([IMAGE_SEPARATOR]))
    buf.write(struct.pack("<HHHHB", 0, 0, width, height, 0))
    buf.write(bytes([min_code_size]))
    write_sub_blocks(buf, data)
    buf.write(bytes([TRAILER]))
    buf.seek(0)

    with error_context("decompress image data", DecodeError,
                       context={"width": width, "height": height}):
        with Image.open(buf) as image:
            image.load()
            pixels = np.array(image, dtype=np.uint8)

    if pixels.shape != (height, width):
        raise DecodeError(
            f"Decoded {pixels.shape[1]}x{pixels.shape[0]} pixels, expected {width}x{height}"
        )
    return pixels


def encode_pixels(indices: np.ndarray) -> tuple[int, bytes]:
    """Compress an index array, returning ``(min_code_size, data)``."""
    indices = np.ascontiguousarray(indices, dtype=np.uint8)
    if indices.ndim != 2 or 0 in indices.shape:
        raise EncodeError(f"Cannot encode pixel buffer of shape {indices.shape}")

    buf = BytesIO()
    with error_context("compress image data", EncodeError):
        Image.fromarray(indices).save(buf, format="GIF", optimize=False, interlace=False)
    buf.seek(0)

    try:
        reader = GifReader(buf)
        while True:
            record = reader.record_type()
            if record is RecordType.IMAGE_DESC:
                reader.image_descriptor()
                return reader.raw_image_data()
            if record is RecordType.EXTENSION:
                reader.extension()
            else:
                raise EncodeError("Encoded GIF carries no image data")
    except DecodeError as e:
        raise EncodeError(f"Failed to extract compressed image data: {e}", cause=e) from e


class GifReader:
    """Reads a GIF stream record by record.

    Usage:
        reader = GifReader(fp)
        while (record := reader.record_type()) is not RecordType.TERMINATE:
            ...
    """

    def __init__(self, fp: BinaryIO, config: CodecConfig = DEFAULT_CODEC_CONFIG):
        self.fp = fp
        self.config = config
        self._descriptor: ImageDescriptor | None = None
        self._data_pending = False

        signature = _read_exact(fp, 6)
        if signature[:3] != GIF_SIGNATURE or signature[3:] not in (GIF87A, GIF89A):
            raise DecodeError(f"Not a GIF file (signature {signature!r})")
        self.version = signature[3:].decode("ascii")

        width, height, packed, background, aspect = struct.unpack(
            "<HHBBB", _read_exact(fp, 7)
        )
        color_table = None
        if packed & 0x80:
            color_table = self._read_color_table((packed & 0x07) + 1)

        self.screen = ScreenDescriptor(
            width=width,
            height=height,
            color_table=color_table,
            background_index=background,
            aspect_ratio=aspect,
        )

    def _read_color_table(self, bits: int) -> np.ndarray:
        raw = _read_exact(self.fp, 3 << bits)
        return np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).copy()

    def record_type(self) -> RecordType:
        """Read the introducer of the next record."""
        if self._data_pending:
            # image data nobody asked for is skipped
            self.raw_image_data()

        introducer = _read_exact(self.fp, 1)[0]
        if introducer == IMAGE_SEPARATOR:
            return RecordType.IMAGE_DESC
        if introducer == EXTENSION_INTRODUCER:
            return RecordType.EXTENSION
        if introducer == TRAILER:
            return RecordType.TERMINATE
        raise DecodeError(f"Unknown record introducer 0x{introducer:02X}")

    def image_descriptor(self) -> ImageDescriptor:
        """Read an image descriptor and its local colour table, if any."""
        left, top, width, height, packed = struct.unpack(
            "<HHHHB", _read_exact(self.fp, 9)
        )
        color_table = None
        if packed & 0x80:
            color_table = self._read_color_table((packed & 0x07) + 1)

        self._descriptor = ImageDescriptor(
            left=left,
            top=top,
            width=width,
            height=height,
            interlace=bool(packed & 0x40),
            color_table=color_table,
        )
        self._data_pending = True
        return self._descriptor

    def raw_image_data(self) -> tuple[int, bytes]:
        """Read the compressed data of the current image as-is."""
        if not self._data_pending:
            raise DecodeError("No image descriptor precedes the image data")
        min_code_size = _read_exact(self.fp, 1)[0]
        data = b"".join(read_sub_blocks(self.fp))
        self._data_pending = False
        return min_code_size, data

    def lines(self) -> Iterator[np.ndarray]:
        """Yield the current image's rows of palette indices in stored order."""
        descriptor = self._descriptor
        if descriptor is None:
            raise DecodeError("No image descriptor precedes the image data")
        min_code_size, data = self.raw_image_data()
        pixels = decode_pixels(descriptor.width, descriptor.height, min_code_size, data)
        yield from pixels

    def extension(self) -> Extension:
        """Read an extension's function code and all of its sub-blocks."""
        code = _read_exact(self.fp, 1)[0]
        return Extension(code=code, blocks=list(read_sub_blocks(self.fp)))


class GifWriter:
    """Writes a GIF89a stream record by record.

    The screen descriptor must come first and :meth:`close` writes the
    trailer. Every failure is raised as :class:`EncodeError`.
    """

    def __init__(self, fp: BinaryIO, config: CodecConfig = DEFAULT_CODEC_CONFIG):
        self.fp = fp
        self.config = config
        self._screen: tuple[int, int] | None = None
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise EncodeError("GIF stream already closed")
        if self._screen is None:
            raise EncodeError("Screen descriptor must be written first")

    def put_screen_descriptor(
        self,
        width: int,
        height: int,
        color_table: bytes | np.ndarray | Sequence[Color] | None = None,
        background_index: int = 0,
    ) -> None:
        if self._screen is not None:
            raise EncodeError("Screen descriptor already written")
        if not (0 < width <= 0xFFFF and 0 < height <= 0xFFFF):
            raise EncodeError(f"Invalid screen size {width}x{height}")

        packed = 0
        table = b""
        if color_table is not None:
            table = color_table_bytes(color_table)
            bits = color_table_bits(len(table) // 3)
            packed = 0x80 | ((bits - 1) << 4) | (bits - 1)

        with error_context("write screen descriptor", EncodeError):
            self.fp.write(GIF_SIGNATURE + GIF89A)
            self.fp.write(struct.pack("<HHBBB", width, height, packed, background_index, 0))
            self.fp.write(table)
        self._screen = (width, height)

    def put_extension(self, code: int, blocks: Sequence[bytes]) -> None:
        self._check_open()
        with error_context("write extension", EncodeError, context={"code": hex(code)}):
            self.fp.write(bytes([EXTENSION_INTRODUCER, code]))
            for block in blocks:
                if len(block) > MAX_SUB_BLOCK:
                    raise EncodeError(f"Extension sub-block of {len(block)} bytes is too long")
                self.fp.write(bytes([len(block)]))
                self.fp.write(block)
            self.fp.write(b"\0")

    def put_loop_extension(self, loop_count: int) -> None:
        """Write the NETSCAPE2.0 application extension; 0 loops forever."""
        if not 0 <= loop_count <= 0xFFFF:
            raise EncodeError(f"Loop count {loop_count} does not fit in 16 bits")
        params = bytes([1, loop_count & 0xFF, (loop_count >> 8) & 0xFF])
        self.put_extension(APPLICATION_EXT_FUNC_CODE, [NETSCAPE_IDENTIFIER, params])

    def put_graphics_control(self, control: GraphicsControl) -> None:
        self.put_extension(GRAPHICS_EXT_FUNC_CODE, [control.to_bytes()])

    def put_image(
        self,
        left: int,
        top: int,
        indices: np.ndarray,
        color_table: bytes | np.ndarray | Sequence[Color] | None = None,
        interlace: bool = False,
    ) -> None:
        """Write an image descriptor, its local colour table and pixel data.

        With ``interlace`` the rows are stored in the four-pass interlaced
        order and the descriptor is flagged accordingly.
        """
        self._check_open()
        height, width = indices.shape[:2]
        screen_width, screen_height = self._screen
        if left + width > screen_width or top + height > screen_height:
            raise EncodeError(
                f"Image {width}x{height}+{left}+{top} exceeds screen {screen_width}x{screen_height}"
            )

        packed = 0
        table = b""
        if color_table is not None:
            table = color_table_bytes(color_table)
            packed = 0x80 | (color_table_bits(len(table) // 3) - 1)
        if interlace:
            packed |= 0x40
            order = [
                row
                for offset, jump in zip(self.config.INTERLACE_OFFSETS, self.config.INTERLACE_JUMPS)
                for row in range(offset, height, jump)
            ]
            indices = indices[order]

        min_code_size, data = encode_pixels(indices)

        with error_context("write image", EncodeError,
                           context={"rect": (left, top, width, height)}):
            self.fp.write(bytes([IMAGE_SEPARATOR]))
            self.fp.write(struct.pack("<HHHHB", left, top, width, height, packed))
            self.fp.write(table)
            self.fp.write(bytes([min_code_size]))
            write_sub_blocks(self.fp, data)

    def close(self) -> None:
        self._check_open()
        with error_context("write trailer", EncodeError):
            self.fp.write(bytes([TRAILER]))
            self.fp.flush()
        self._closed = True
