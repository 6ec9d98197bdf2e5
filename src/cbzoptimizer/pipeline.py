"""Read, convert and write back one archive"""

import logging
from pathlib import Path
from typing import Optional

from . import archive
from .config import DEFAULT_QUALITY
from .context import ConversionContext
from .converter import Converter
from .progress import NullProgress, ProgressSink

logger = logging.getLogger(__name__)

CONVERTED_SUFFIX = "_converted"


def output_path_for(path, override: bool) -> Path:
    """Where the converted archive for ``path`` goes.

    Output is always a CBZ. With ``override`` it takes the original's name
    (a CBR becomes ``<base>.cbz``); otherwise ``<base>_converted.cbz`` is
    written beside the original.
    """
    path = Path(path)
    if override:
        if path.suffix.lower() == archive.CBZ_SUFFIX:
            return path
        return path.with_suffix(archive.CBZ_SUFFIX)
    return path.with_name(f"{path.stem}{CONVERTED_SUFFIX}{archive.CBZ_SUFFIX}")


class ChapterPipeline:
    """Drives one archive through a converter and applies the naming policy.

    A pipeline holds no per-file state: each ``optimize`` call loads its own
    Chapter, so one pipeline may serve many worker threads.
    """

    def __init__(self, converter: Converter, quality: int = DEFAULT_QUALITY,
                 override: bool = False, split: bool = False, timeout: float = 0,
                 progress: ProgressSink = None):
        self.converter = converter
        self.quality = quality
        self.override = override
        self.split = split
        self.timeout = timeout
        self.progress = progress or NullProgress()

    def optimize(self, path, parent: ConversionContext = None) -> Optional[Path]:
        """Convert the archive at ``path``.

        Returns the output path, or ``None`` when the archive was already
        converted and nothing was written. Any failure leaves the original
        archive as it was.
        """
        path = Path(path)
        chapter = archive.load_chapter(path)
        if chapter.is_converted:
            logger.info("Chapter already converted, skipping: %s", path)
            return None

        ctx = parent.child(self.timeout) if parent else ConversionContext(self.timeout)
        logger.info("Converting %s (%d pages)", path, chapter.page_count)
        converted = self.converter.convert_chapter(
            ctx, chapter, self.quality, self.split, self.progress
        )

        output = output_path_for(path, self.override)
        archive.write_chapter(converted, output)

        if self.override and output != path:
            path.unlink()
            logger.info("Removed original archive %s", path)
        return output
