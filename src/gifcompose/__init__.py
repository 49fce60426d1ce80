"""gifcompose - read and write animated GIFs as sequences of composited frames."""

__version__: str = "0.1.0"
__author__: str = "gifcompose Team"

from .animation import Gif
from .codec import DisposalMode, GifReader, GifWriter, GraphicsControl, RecordType
from .compositor import Frame, FrameCompositor
from .delta import DeltaEncoder, Rect, WriteRequest, diff_image
from .error_handling import (
    ConfigurationError,
    DecodeError,
    EncodeError,
    GifComposeError,
)
from .histogram import Color, ColorBucket, build_histogram
from .quantize import IndexedImage, MedianCutQuantizer, quantize

__all__ = [
    "Color",
    "ColorBucket",
    "ConfigurationError",
    "DecodeError",
    "DeltaEncoder",
    "DisposalMode",
    "EncodeError",
    "Frame",
    "FrameCompositor",
    "Gif",
    "GifComposeError",
    "GifReader",
    "GifWriter",
    "GraphicsControl",
    "IndexedImage",
    "MedianCutQuantizer",
    "Rect",
    "RecordType",
    "WriteRequest",
    "build_histogram",
    "diff_image",
    "quantize",
]
