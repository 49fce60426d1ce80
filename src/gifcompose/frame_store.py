"""Temporary on-disk storage for decoded frames."""

import logging
import tempfile
from pathlib import Path

from PIL import Image

from .config import DEFAULT_FRAME_STORE_CONFIG, FrameStoreConfig
from .io import ensure_directories

logger = logging.getLogger(__name__)


class FrameStore:
    """Process-private directory of still images named by 1-based frame index.

    The directory is created on first use and removed by :meth:`clear`, so
    independent stores never share files.
    """

    def __init__(self, config: FrameStoreConfig = DEFAULT_FRAME_STORE_CONFIG):
        self.config = config
        self._dir: tempfile.TemporaryDirectory | None = None

    @property
    def directory(self) -> Path:
        if self._dir is None:
            if self.config.TEMP_DIR is not None:
                ensure_directories(self.config.TEMP_DIR)
            self._dir = tempfile.TemporaryDirectory(
                prefix=self.config.TEMP_PREFIX,
                dir=self.config.TEMP_DIR,
            )
            logger.debug(f"Created frame store at {self._dir.name}")
        return Path(self._dir.name)

    @property
    def is_open(self) -> bool:
        return self._dir is not None

    def path(self, index: int) -> Path:
        """Path of the frame with 1-based ``index``."""
        return self.directory / f"{index}{self.config.suffix}"

    def paths(self, count: int) -> list[Path]:
        return [self.path(i) for i in range(1, count + 1)]

    def save(self, index: int, image: Image.Image) -> Path:
        path = self.path(index)
        image.save(path, format=self.config.FRAME_FORMAT)
        return path

    def load(self, index: int) -> Image.Image:
        """Load the frame with 1-based ``index`` fully into memory."""
        with Image.open(self.path(index)) as image:
            image.load()
            return image.copy()

    def clear(self) -> None:
        if self._dir is not None:
            logger.debug(f"Removing frame store at {self._dir.name}")
            self._dir.cleanup()
            self._dir = None
