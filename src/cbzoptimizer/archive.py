"""Reading chapters from CBZ/CBR archives and writing them back as CBZ.

The converted state travels in the zip archive comment:

    2024-05-01T10:00:00+00:00
    This chapter has been converted by CBZOptimizer.

A chapter read from an archive whose comment carries the marker line is
already converted, and optimizing it again is a no-op.
"""

import abc
import logging
import os
import re
import zipfile
import zlib
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import rarfile

from .errors import ArchiveReadError, ArchiveWriteError
from .models import Chapter, Page

logger = logging.getLogger(__name__)

CBZ_SUFFIX = ".cbz"
CBR_SUFFIX = ".cbr"
ARCHIVE_SUFFIXES = (CBZ_SUFFIX, CBR_SUFFIX)

COMIC_INFO_NAME = "ComicInfo.xml"
CONVERTED_MARKER = "This chapter has been converted by CBZOptimizer."


def is_archive(path) -> bool:
    return str(path).lower().endswith(ARCHIVE_SUFFIXES)


def natural_key(name: str):
    """Sort key that orders ``page2`` before ``page10``"""
    return [int(tok) if tok.isdigit() else tok.lower() for tok in re.split(r"(\d+)", name)]


def build_comment(converted_time: Optional[datetime]) -> str:
    if converted_time is None:
        return CONVERTED_MARKER
    return f"{converted_time.isoformat()}\n{CONVERTED_MARKER}"


def parse_comment(comment: str) -> Tuple[bool, Optional[datetime]]:
    """Return ``(is_converted, converted_time)`` from an archive comment"""
    if not comment or CONVERTED_MARKER not in comment:
        return False, None
    first_line = comment.strip().splitlines()[0].strip()
    try:
        return True, datetime.fromisoformat(first_line)
    except ValueError:
        logger.debug("Converted marker without a valid timestamp: %r", first_line)
        return True, None


class ArchiveReader(abc.ABC):
    """Ordered file entries of one archive"""

    def __init__(self, path: Path):
        self.path = Path(path)

    @property
    @abc.abstractmethod
    def comment(self) -> str:
        ...

    @abc.abstractmethod
    def entries(self) -> Iterator[Tuple[str, bytes]]:
        """Yield ``(name, data)`` for every file entry, in natural name order"""

    @abc.abstractmethod
    def close(self) -> None:
        ...

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class ZipArchiveReader(ArchiveReader):
    def __init__(self, path: Path):
        super().__init__(path)
        self._zip = zipfile.ZipFile(self.path)

    @property
    def comment(self) -> str:
        return self._zip.comment.decode("utf-8", errors="replace")

    def entries(self):
        infos = [info for info in self._zip.infolist() if not info.is_dir()]
        for info in sorted(infos, key=lambda i: natural_key(i.filename)):
            yield info.filename, self._zip.read(info)

    def close(self):
        self._zip.close()


class RarArchiveReader(ArchiveReader):
    def __init__(self, path: Path):
        super().__init__(path)
        self._rar = rarfile.RarFile(str(self.path))

    @property
    def comment(self) -> str:
        return self._rar.comment or ""

    def entries(self):
        infos = [info for info in self._rar.infolist() if not info.is_dir()]
        for info in sorted(infos, key=lambda i: natural_key(i.filename)):
            yield info.filename, self._rar.read(info)

    def close(self):
        self._rar.close()


def open_archive(path) -> ArchiveReader:
    """Pick the reader for ``path`` from its suffix"""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == CBZ_SUFFIX:
        return ZipArchiveReader(path)
    if suffix == CBR_SUFFIX:
        return RarArchiveReader(path)
    raise ArchiveReadError(f"Unsupported archive type: {path}")


def load_chapter(path) -> Chapter:
    """Read every page of the archive at ``path`` into a Chapter"""
    path = Path(path)
    if not path.is_file():
        raise ArchiveReadError(f"Archive not found: {path}")

    pages: List[Page] = []
    comic_info = None
    try:
        with open_archive(path) as reader:
            is_converted, converted_time = parse_comment(reader.comment)
            for name, data in reader.entries():
                if Path(name).name.lower() == COMIC_INFO_NAME.lower():
                    comic_info = data.decode("utf-8", errors="replace")
                    continue
                pages.append(Page(index=len(pages), contents=data,
                                  extension=Path(name).suffix.lower()))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, rarfile.Error, zlib.error, OSError) as e:
        raise ArchiveReadError(f"Failed to read archive {path}: {e}") from e

    logger.debug("Loaded %s: %d pages, converted=%s", path.name, len(pages), is_converted)
    return Chapter(
        file_path=path,
        pages=pages,
        is_converted=is_converted,
        converted_time=converted_time,
        comic_info_xml=comic_info,
    )


def write_chapter(chapter: Chapter, output_path) -> Path:
    """Write ``chapter`` as a CBZ at ``output_path``.

    The archive is built next to the target and moved into place, so the
    target is either fully replaced or left untouched.
    """
    output_path = Path(output_path)
    tmp_path = output_path.with_name(output_path.name + ".tmp")
    try:
        with zipfile.ZipFile(tmp_path, "w", zipfile.ZIP_DEFLATED, compresslevel=6) as cbz:
            if chapter.comic_info_xml is not None:
                cbz.writestr(COMIC_INFO_NAME, chapter.comic_info_xml)
            for page in chapter.pages:
                cbz.writestr(page.entry_name, page.contents)
            if chapter.is_converted:
                cbz.comment = build_comment(chapter.converted_time).encode("utf-8")
        os.replace(tmp_path, output_path)
    except (OSError, zipfile.LargeZipFile) as e:
        if tmp_path.exists():
            tmp_path.unlink()  # Clean up partial file
        raise ArchiveWriteError(f"Failed to write archive {output_path}: {e}") from e

    size_mb = output_path.stat().st_size / (1024 * 1024)
    logger.info("Wrote %s (%d pages, %.1f MB)", output_path, chapter.page_count, size_mb)
    return output_path
