"""Batch processing of many archives with bounded concurrency"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from . import archive
from .config import DEFAULT_PARALLELISM
from .context import ConversionContext
from .errors import ConversionCancelledError, PathValidationError
from .pipeline import ChapterPipeline

logger = logging.getLogger(__name__)


def discover_archives(paths: Iterable) -> List[Path]:
    """Expand ``paths`` into archive files.

    Directories are walked recursively for ``.cbz``/``.cbr`` files; plain files
    are taken as given. A missing path raises ``PathValidationError``.
    """
    found: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            in_dir = []
            for root, _dirs, files in os.walk(path):
                in_dir.extend(Path(root) / name for name in files if archive.is_archive(name))
            # Sort by name for consistent processing order
            in_dir.sort(key=lambda p: archive.natural_key(str(p)))
            found.extend(in_dir)
        elif path.is_file():
            found.append(path)
        else:
            raise PathValidationError(f"Path does not exist: {raw}")

    unique = []
    seen = set()
    for path in found:
        key = path.resolve()
        if key not in seen:
            seen.add(key)
            unique.append(path)
    return unique


@dataclass
class BatchResult:
    converted: List[Tuple[Path, Path]] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)
    failures: List[Tuple[Path, Exception]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.converted) + len(self.skipped) + len(self.failures)

    @property
    def successful(self) -> int:
        return len(self.converted) + len(self.skipped)


class ParallelScheduler:
    """Runs a ChapterPipeline over many files, at most ``parallelism`` at a time.

    Every file gets its own context derived from the batch context, with the
    pipeline's timeout. One file failing never stops the others.
    """

    def __init__(self, pipeline: ChapterPipeline, parallelism: int = DEFAULT_PARALLELISM):
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self.pipeline = pipeline
        self.parallelism = parallelism

    def _process(self, path: Path, ctx: ConversionContext) -> Optional[Path]:
        if ctx.cancelled:
            raise ConversionCancelledError(f"Batch cancelled before {path.name} started")
        return self.pipeline.optimize(path, parent=ctx)

    def run(self, paths: Iterable, ctx: ConversionContext = None) -> BatchResult:
        """Process all ``paths``; returns once every file has finished"""
        ctx = ctx or ConversionContext()
        paths = [Path(p) for p in paths]
        result = BatchResult()
        if not paths:
            return result

        logger.info("Processing %d archives with parallelism %d", len(paths), self.parallelism)
        with ThreadPoolExecutor(max_workers=self.parallelism,
                                thread_name_prefix="cbzoptimizer") as executor:
            futures = {executor.submit(self._process, path, ctx): path for path in paths}

            for future in as_completed(futures):
                path = futures[future]
                try:
                    output = future.result()
                except Exception as e:
                    logger.error("Failed to convert %s: %s", path, e)
                    result.failures.append((path, e))
                    continue
                if output is None:
                    result.skipped.append(path)
                else:
                    logger.info("Converted %s -> %s", path.name, output.name)
                    result.converted.append((path, output))

        return result
