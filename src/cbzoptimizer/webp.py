"""WebP chapter converter"""

import dataclasses
import logging
import threading
from datetime import datetime, timezone
from typing import List

from .context import ConversionContext
from .converter import ConversionFormat, Converter
from .encoders import WEBP_MAX_DIMENSION, WebPEncoder
from .models import Chapter, Page
from .progress import NullProgress, ProgressSink
from .splitter import PageSplitter

logger = logging.getLogger(__name__)

# Pages taller than this are sliced when splitting is enabled
SPLIT_THRESHOLD = 4000
# Height of each slice
SPLIT_HEIGHT = 2000


class WebPConverter(Converter):
    _prepare_lock = threading.Lock()

    def __init__(self, encoder: WebPEncoder = None, splitter: PageSplitter = None):
        self.encoder = encoder or WebPEncoder()
        self.splitter = splitter or PageSplitter(
            WEBP_MAX_DIMENSION, split_height=SPLIT_HEIGHT, split_threshold=SPLIT_THRESHOLD
        )
        self._prepared = False

    def format(self) -> ConversionFormat:
        return ConversionFormat.WEBP

    def prepare_converter(self) -> None:
        with self._prepare_lock:
            if self._prepared:
                return
            self.encoder.prepare()
            self._prepared = True

    def convert_chapter(self, ctx: ConversionContext, chapter: Chapter, quality: int,
                        split: bool, progress: ProgressSink = None) -> Chapter:
        progress = progress or NullProgress()
        ctx = ctx or ConversionContext()
        total = len(chapter.pages)
        pages: List[Page] = []

        for current, page in enumerate(chapter.pages, 1):
            ctx.check()
            result = self.splitter.split(page.contents, split, index=page.index)

            if result.decode_failed:
                logger.warning("page[%d] of %s could not be decoded, keeping it as is: %s",
                               page.index, chapter.file_path.name, result.decode_error)
                pages.append(dataclasses.replace(page, index=len(pages)))
                progress.report(f"Kept page {page.index} unchanged", current, total)
                continue

            try:
                for part, img in enumerate(result.images):
                    ctx.check()
                    contents = self.encoder.encode(img, quality)
                    pages.append(Page(
                        index=len(pages),
                        contents=contents,
                        extension=self.encoder.extension,
                        is_split=result.was_split,
                        split_part_index=part,
                    ))
            finally:
                for img in result.images:
                    img.close()

            if result.was_split:
                message = f"Converted page {page.index} into {len(result.images)} parts"
            else:
                message = f"Converted page {page.index}"
            progress.report(message, current, total)

        ctx.check()
        logger.debug("Converted %s: %d pages in, %d pages out",
                     chapter.file_path.name, total, len(pages))
        return dataclasses.replace(
            chapter,
            pages=pages,
            is_converted=True,
            converted_time=datetime.now(timezone.utc),
        )
