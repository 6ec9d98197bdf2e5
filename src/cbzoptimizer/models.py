"""Page and chapter data model"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional


@dataclass
class Page:
    """One image entry within a chapter.

    ``extension`` is authoritative: ``contents`` must decode under the codec
    it names, unless the page was undecodable when it was read.
    """
    index: int
    contents: bytes
    extension: str
    is_split: bool = False
    split_part_index: int = 0

    @property
    def entry_name(self) -> str:
        return f"{self.index:04d}{self.extension}"


@dataclass
class Chapter:
    """One archive's worth of pages plus conversion metadata"""
    file_path: Path
    pages: List[Page] = field(default_factory=list)
    is_converted: bool = False
    converted_time: Optional[datetime] = None
    comic_info_xml: Optional[str] = None

    def __post_init__(self):
        self.file_path = Path(self.file_path)
        indices = [page.index for page in self.pages]
        if len(indices) != len(set(indices)):
            raise ValueError(f"Duplicate page indices in chapter: {self.file_path}")
        self.pages.sort(key=lambda page: page.index)

    @property
    def page_count(self) -> int:
        return len(self.pages)
