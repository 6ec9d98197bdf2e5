#!/usr/bin/env python3
"""
Performance tests for CBZOptimizer
Tests basic performance characteristics of the batch scheduler and converter
"""

import os
import shutil
import sys
import tempfile
import time
import unittest
from pathlib import Path

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from helpers import FakeConverter, make_cbz, make_chapter

from cbzoptimizer.context import ConversionContext
from cbzoptimizer.pipeline import ChapterPipeline
from cbzoptimizer.scheduler import ParallelScheduler
from cbzoptimizer.webp import WebPConverter


class TestPerformance(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_parallel_batch_faster_than_serial(self):
        """Four 0.3s conversions with parallelism 4 overlap"""
        files = [make_cbz(self.temp_dir / f"c{i}.cbz", page_count=1) for i in range(4)]
        scheduler = ParallelScheduler(ChapterPipeline(FakeConverter(delay=0.3)), parallelism=4)

        start = time.time()
        result = scheduler.run(files)
        elapsed = time.time() - start

        self.assertEqual(len(result.converted), 4)
        self.assertLess(elapsed, 1.2, f"Batch took {elapsed:.2f}s, expected overlap")

    def test_chapter_conversion_time(self):
        """Twenty small pages convert well within a few seconds"""
        converter = WebPConverter()
        chapter = make_chapter([800] * 20, width=600)

        start = time.time()
        converted = converter.convert_chapter(ConversionContext(), chapter, 80, False)
        elapsed = time.time() - start

        self.assertEqual(len(converted.pages), 20)
        self.assertLess(elapsed, 10.0, f"Conversion took {elapsed:.2f}s")


if __name__ == '__main__':
    unittest.main()
