"""
CBZOptimizer - Converts the pages of CBZ/CBR comics to a smaller image format

Pages are re-encoded to WebP, pages too tall for the format can be split into
bands, many archives are converted in parallel with optional per-chapter
timeouts, and a watch mode converts archives as they land in a folder.
"""

__version__ = "1.0.0"

from .context import ConversionContext
from .converter import ConversionFormat, Converter, available_formats, get_converter
from .models import Chapter, Page
from .pipeline import ChapterPipeline
from .scheduler import BatchResult, ParallelScheduler, discover_archives

__all__ = [
    "BatchResult",
    "Chapter",
    "ChapterPipeline",
    "ConversionContext",
    "ConversionFormat",
    "Converter",
    "Page",
    "ParallelScheduler",
    "available_formats",
    "discover_archives",
    "get_converter",
]
