"""Page splitting for images taller than the target codec allows.

The splitter decodes one page and decides its fate:

- undecodable: ``SplitResult`` with ``decode_error`` set, caller keeps the page
- fits (or splitting not needed): a single image
- too tall, splitting disabled: ``OversizedPageError``
- too tall, splitting enabled: horizontal bands, top to bottom

Decoding happens before any dimension check, so a corrupt page that claims an
oversized height is still a decode failure.
"""

import io
import math
from dataclasses import dataclass, field
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

from .errors import OversizedPageError

# Long webtoon strips exceed Pillow's default bomb guard of ~179M pixels.
# Pages come from archives the user chose to convert; refuse only past this.
MAX_PAGE_PIXELS = 1_000_000_000
Image.MAX_IMAGE_PIXELS = MAX_PAGE_PIXELS


@dataclass
class SplitResult:
    """Outcome of splitting one page"""
    images: List[Image.Image] = field(default_factory=list)
    source_format: Optional[str] = None
    decode_error: Optional[Exception] = None

    @property
    def decode_failed(self) -> bool:
        return self.decode_error is not None

    @property
    def was_split(self) -> bool:
        return len(self.images) > 1


def decode_image(data: bytes) -> Image.Image:
    """Fully decode ``data``; raises on anything Pillow cannot load"""
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def chunk_count(height: int, split_height: int) -> int:
    return math.ceil(height / split_height)


def band_boxes(width: int, height: int, split_height: int):
    """Crop boxes for horizontal bands; the last band takes the remainder rows"""
    count = chunk_count(height, split_height)
    boxes = []
    for i in range(count):
        top = i * split_height
        bottom = height if i == count - 1 else top + split_height
        boxes.append((0, top, width, bottom))
    return boxes


class PageSplitter:
    """Decides whether and how to slice a page against ``max_height``.

    ``max_height`` is the codec's hard ceiling: a taller page cannot be encoded
    without splitting. ``split_threshold`` is the height above which a page is
    split when splitting is allowed and ``split_height`` the height of each
    band; both default to ``max_height``.
    """

    def __init__(self, max_height: int, split_height: Optional[int] = None,
                 split_threshold: Optional[int] = None):
        if max_height < 1:
            raise ValueError("max_height must be positive")
        self.max_height = max_height
        self.split_height = min(split_height or max_height, max_height)
        self.split_threshold = min(split_threshold or max_height, max_height)

    def split(self, data: bytes, split_allowed: bool, index: int = 0) -> SplitResult:
        try:
            img = decode_image(data)
        except (UnidentifiedImageError, OSError, ValueError, SyntaxError) as e:
            return SplitResult(decode_error=e)

        source_format = img.format
        width, height = img.size

        if height > self.max_height and not split_allowed:
            img.close()
            raise OversizedPageError(index, height, self.max_height)

        if not split_allowed or height <= self.split_threshold:
            return SplitResult(images=[img], source_format=source_format)

        bands = [img.crop(box) for box in band_boxes(width, height, self.split_height)]
        img.close()
        return SplitResult(images=bands, source_format=source_format)
