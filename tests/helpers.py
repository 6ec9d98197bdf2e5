"""Shared fixtures for the cbzoptimizer test suite"""

import dataclasses
import io
import os
import sys
import threading
import time
import zipfile
from datetime import datetime, timezone

from PIL import Image

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from cbzoptimizer.context import ConversionContext
from cbzoptimizer.converter import ConversionFormat, Converter
from cbzoptimizer.errors import EncodeError
from cbzoptimizer.models import Chapter, Page


def make_image_bytes(width=300, height=1000, fmt="JPEG", color=(180, 180, 180)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, fmt)
    return buf.getvalue()


def make_page(index, width=300, height=1000) -> Page:
    return Page(index=index, contents=make_image_bytes(width, height), extension=".jpg")


def make_chapter(heights, path="chapter.cbz", width=300) -> Chapter:
    pages = [make_page(i, width, h) for i, h in enumerate(heights)]
    return Chapter(file_path=path, pages=pages)


def make_cbz(path, page_count=3, height=400, comment=None, comic_info=None, names=None):
    """Write a small CBZ of JPEG pages and return its path"""
    names = names or [f"page_{i + 1:03d}.jpg" for i in range(page_count)]
    with zipfile.ZipFile(path, "w") as cbz:
        if comic_info is not None:
            cbz.writestr("ComicInfo.xml", comic_info)
        for name in names:
            cbz.writestr(name, make_image_bytes(120, height))
        if comment is not None:
            cbz.comment = comment.encode("utf-8")
    return path


class FakeConverter(Converter):
    """Marks chapters converted without touching the pages.

    Records how many conversions overlap so tests can check the worker bound.
    """

    def __init__(self, delay=0.0, fail_for=()):
        self.delay = delay
        self.fail_for = set(fail_for)
        self.prepare_calls = 0
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def format(self):
        return ConversionFormat.WEBP

    def prepare_converter(self):
        self.prepare_calls += 1

    def convert_chapter(self, ctx: ConversionContext, chapter, quality, split, progress=None):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.calls.append(chapter.file_path.name)
        try:
            if self.delay:
                time.sleep(self.delay)
            if chapter.file_path.name in self.fail_for:
                raise EncodeError(f"cannot encode {chapter.file_path.name}")
            return dataclasses.replace(
                chapter, is_converted=True, converted_time=datetime.now(timezone.utc)
            )
        finally:
            with self._lock:
                self.active -= 1
