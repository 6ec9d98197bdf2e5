"""Converter abstraction and the format registry"""

import abc
import enum
from typing import Callable, Dict, List

from .context import ConversionContext
from .errors import UnsupportedFormatError
from .models import Chapter
from .progress import ProgressSink


class ConversionFormat(enum.Enum):
    WEBP = "webp"

    def __str__(self):
        return self.value

    @classmethod
    def parse(cls, value: str) -> "ConversionFormat":
        """Case-insensitive lookup; rejects unknown formats"""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for fmt in cls:
            if fmt.value == normalized:
                return fmt
        raise UnsupportedFormatError(
            f"Unsupported format '{value}' (choose from: {', '.join(list_all())})"
        )


DEFAULT_FORMAT = ConversionFormat.WEBP


def list_all() -> List[str]:
    return [fmt.value for fmt in ConversionFormat]


class Converter(abc.ABC):
    """Turns a chapter's pages into pages of one target format"""

    @abc.abstractmethod
    def format(self) -> ConversionFormat:
        ...

    @abc.abstractmethod
    def prepare_converter(self) -> None:
        """One-time encoder setup; call before any conversion"""

    @abc.abstractmethod
    def convert_chapter(self, ctx: ConversionContext, chapter: Chapter, quality: int,
                        split: bool, progress: ProgressSink = None) -> Chapter:
        """Return a new, converted chapter or raise"""


def _registry() -> Dict[ConversionFormat, Callable[[], Converter]]:
    from .webp import WebPConverter
    return {ConversionFormat.WEBP: WebPConverter}


def available_formats() -> List[ConversionFormat]:
    return list(_registry())


def get_converter(fmt) -> Converter:
    """Build a new converter for ``fmt`` (a ConversionFormat or its name)"""
    fmt = ConversionFormat.parse(fmt)
    factory = _registry().get(fmt)
    if factory is None:
        raise UnsupportedFormatError(f"No converter registered for format '{fmt}'")
    return factory()
