#!/usr/bin/env python3
"""
Tests for reading chapters from archives and writing them back as CBZ
"""

import os
import shutil
import sys
import tempfile
import unittest
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from helpers import make_cbz, make_chapter

from cbzoptimizer import archive
from cbzoptimizer.archive import (CONVERTED_MARKER, RarArchiveReader, ZipArchiveReader,
                                  build_comment, is_archive, load_chapter, natural_key,
                                  open_archive, parse_comment, write_chapter)
from cbzoptimizer.errors import ArchiveReadError, ArchiveWriteError


class TestHelpers(unittest.TestCase):

    def test_is_archive_case_insensitive(self):
        self.assertTrue(is_archive("a/b/Comic.CBZ"))
        self.assertTrue(is_archive("comic.cbr"))
        self.assertFalse(is_archive("comic.zip"))
        self.assertFalse(is_archive("comic.cbz.tmp"))

    def test_natural_sort(self):
        names = ["page10.jpg", "page2.jpg", "Page1.jpg"]
        self.assertEqual(sorted(names, key=natural_key), ["Page1.jpg", "page2.jpg", "page10.jpg"])

    def test_comment_round_trip(self):
        when = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        self.assertEqual(parse_comment(build_comment(when)), (True, when))

    def test_comment_without_marker(self):
        self.assertEqual(parse_comment("Scanned by someone"), (False, None))
        self.assertEqual(parse_comment(""), (False, None))

    def test_comment_with_bad_timestamp(self):
        self.assertEqual(parse_comment(f"yesterday\n{CONVERTED_MARKER}"), (True, None))
        self.assertEqual(parse_comment(build_comment(None)), (True, None))


class TestLoadChapter(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def path(self, name):
        return os.path.join(self.temp_dir, name)

    def test_load_pages_in_natural_order(self):
        names = ["p10.jpg", "p2.jpg", "p1.jpg"]
        make_cbz(self.path("a.cbz"), names=names)

        chapter = load_chapter(self.path("a.cbz"))

        self.assertEqual(chapter.page_count, 3)
        self.assertEqual([p.index for p in chapter.pages], [0, 1, 2])
        self.assertTrue(all(p.extension == ".jpg" for p in chapter.pages))
        self.assertFalse(chapter.is_converted)

    def test_comic_info_is_metadata_not_a_page(self):
        make_cbz(self.path("a.cbz"), page_count=2, comic_info="<ComicInfo><Title>T</Title></ComicInfo>")
        chapter = load_chapter(self.path("a.cbz"))
        self.assertEqual(chapter.page_count, 2)
        self.assertIn("<Title>T</Title>", chapter.comic_info_xml)

    def test_directories_skipped(self):
        with zipfile.ZipFile(self.path("a.cbz"), "w") as cbz:
            cbz.writestr("chapter1/", b"")
            cbz.writestr("chapter1/001.png", b"not really a png")
        chapter = load_chapter(self.path("a.cbz"))
        self.assertEqual(chapter.page_count, 1)
        self.assertEqual(chapter.pages[0].extension, ".png")

    def test_converted_marker_detected(self):
        when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        make_cbz(self.path("a.cbz"), comment=build_comment(when))
        chapter = load_chapter(self.path("a.cbz"))
        self.assertTrue(chapter.is_converted)
        self.assertEqual(chapter.converted_time, when)

    def test_missing_archive(self):
        with self.assertRaises(ArchiveReadError):
            load_chapter(self.path("missing.cbz"))

    def test_malformed_archive(self):
        with open(self.path("broken.cbz"), "wb") as f:
            f.write(b"this is not a zip file")
        with self.assertRaises(ArchiveReadError):
            load_chapter(self.path("broken.cbz"))

    def test_unsupported_suffix(self):
        make_cbz(self.path("a.zip"))
        with self.assertRaises(ArchiveReadError):
            load_chapter(self.path("a.zip"))

    def test_reader_selected_by_suffix(self):
        make_cbz(self.path("a.CBZ"))
        with open_archive(self.path("a.CBZ")) as reader:
            self.assertIsInstance(reader, ZipArchiveReader)

    @patch("cbzoptimizer.archive.rarfile.RarFile")
    def test_cbr_uses_rar_reader(self, mock_rarfile):
        """CBR archives go through rarfile behind the same entries interface"""
        info_dir = MagicMock(filename="ch", **{"is_dir.return_value": True})
        info_b = MagicMock(filename="ch/b10.jpg", **{"is_dir.return_value": False})
        info_a = MagicMock(filename="ch/b9.jpg", **{"is_dir.return_value": False})
        rar = mock_rarfile.return_value
        rar.comment = None
        rar.infolist.return_value = [info_dir, info_b, info_a]
        rar.read.side_effect = lambda info: info.filename.encode()

        cbr = self.path("a.cbr")
        Path(cbr).write_bytes(b"Rar!")
        with open_archive(cbr) as reader:
            self.assertIsInstance(reader, RarArchiveReader)

        chapter = load_chapter(cbr)
        self.assertEqual([p.contents for p in chapter.pages], [b"ch/b9.jpg", b"ch/b10.jpg"])
        rar.close.assert_called()

    @patch("cbzoptimizer.archive.rarfile.RarFile")
    def test_bad_rar_is_read_error(self, mock_rarfile):
        mock_rarfile.side_effect = archive.rarfile.BadRarFile("bad")
        cbr = self.path("a.cbr")
        Path(cbr).write_bytes(b"junk")
        with self.assertRaises(ArchiveReadError):
            load_chapter(cbr)


class TestWriteChapter(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_write_then_load_keeps_converted_state(self):
        chapter = make_chapter([100, 100, 100])
        chapter.is_converted = True
        chapter.converted_time = datetime(2024, 6, 1, tzinfo=timezone.utc)
        chapter.comic_info_xml = "<ComicInfo/>"
        out = Path(self.temp_dir) / "out.cbz"

        write_chapter(chapter, out)

        with zipfile.ZipFile(out) as cbz:
            self.assertEqual(cbz.namelist(), ["ComicInfo.xml", "0000.jpg", "0001.jpg", "0002.jpg"])
        loaded = load_chapter(out)
        self.assertTrue(loaded.is_converted)
        self.assertEqual(loaded.converted_time, chapter.converted_time)
        self.assertEqual(loaded.comic_info_xml, "<ComicInfo/>")
        self.assertEqual([p.contents for p in loaded.pages], [p.contents for p in chapter.pages])

    def test_unconverted_chapter_has_no_marker(self):
        out = Path(self.temp_dir) / "out.cbz"
        write_chapter(make_chapter([100]), out)
        self.assertFalse(load_chapter(out).is_converted)

    def test_failed_write_leaves_existing_file(self):
        """A failure mid-write removes the partial file and keeps the target intact"""
        out = Path(self.temp_dir) / "out.cbz"
        out.write_bytes(b"original")

        with patch("cbzoptimizer.archive.zipfile.ZipFile.writestr",
                   side_effect=OSError("disk full")):
            with self.assertRaises(ArchiveWriteError):
                write_chapter(make_chapter([100]), out)

        self.assertEqual(out.read_bytes(), b"original")
        self.assertEqual(os.listdir(self.temp_dir), ["out.cbz"])


if __name__ == '__main__':
    unittest.main()
