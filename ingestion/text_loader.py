"""Plain-text book loading module."""
import re
from pathlib import Path
from typing import List, Optional
from utils.logger import setup_logger
from ingestion.models import BookSource, Chapter
from ingestion.cleaner import clean_text

logger = setup_logger(__name__)

# Patterns for chapter headings
CHAPTER_PATTERNS = [
    r'^Chapter\s+\d+\b.*$',
    r'^Chapter\s+[IVXLCDM]+\b.*$',  # Roman numerals
    r'^Chapter\s+[A-Za-z\-]+$',  # "Chapter One"
    r'^Part\s+\d+\b.*$',
    r'^Prologue$',
    r'^Epilogue$',
]
_HEADING = re.compile('|'.join(CHAPTER_PATTERNS), re.IGNORECASE | re.MULTILINE)


class TextLoadError(Exception):
    """Raised when a text book cannot be loaded."""
    pass


class TextBookLoader:
    """Loads a plain-text book and recovers its chapter structure."""

    def load(self, path: str, title: Optional[str] = None) -> BookSource:
        """Load a UTF-8 text file into a BookSource.

        Args:
            path: Path to a .txt file
            title: Book title (defaults to the file stem)

        Returns:
            BookSource with detected chapters

        Raises:
            TextLoadError: If the file is missing, unreadable or empty
        """
        path = Path(path)

        if not path.exists():
            raise TextLoadError(f"Text file not found: {path}")

        try:
            raw = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise TextLoadError(f"Failed to read {path.name}: {e}")

        source = self.from_text(raw, title=title or path.stem)
        logger.info(
            f"Loaded {path.name}: {len(source.text)} chars, {len(source.chapters)} chapters"
        )
        return source

    def from_text(self, raw: str, title: Optional[str] = None) -> BookSource:
        """Build a BookSource from pasted text or a summary."""
        text = clean_text(raw)
        if not text:
            raise TextLoadError("Book text is empty")

        return BookSource(text=text, chapters=self.split_chapters(text), title=title)

    def split_chapters(self, text: str) -> List[Chapter]:
        """Split text at chapter headings.

        Text before the first heading becomes an untitled chapter. Returns an
        empty list when no headings are found.
        """
        headings = list(_HEADING.finditer(text))
        if not headings:
            return []

        chapters = []
        preface = text[:headings[0].start()].strip()
        if preface:
            chapters.append(Chapter(text=preface))

        for i, match in enumerate(headings):
            end = headings[i + 1].start() if i + 1 < len(headings) else len(text)
            body = text[match.end():end].strip()
            chapters.append(Chapter(title=match.group(0).strip(), text=body))

        return chapters
