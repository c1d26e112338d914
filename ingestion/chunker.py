"""Book text chunking module."""
import re
from typing import List
from utils.logger import setup_logger
from ingestion.models import BookSource, Chapter, TextChunk

logger = setup_logger(__name__)

PARAGRAPH_BREAK = re.compile(r'\n{2,}')
SEPARATOR = '\n\n'


class BookChunker:
    """Splits oversized book text into ordered chunks.

    Chapter boundaries are preferred when the source carries them; otherwise
    the text is packed paragraph by paragraph. Chunks never split a paragraph,
    so only a single paragraph longer than the budget can exceed it.
    """

    def __init__(self, max_chars: int):
        """Initialize chunker.

        Args:
            max_chars: Character budget per chunk
        """
        if max_chars <= 0:
            raise ValueError(f"Chunk budget must be positive, got {max_chars}")
        self.max_chars = max_chars

    def chunk(self, source: BookSource) -> List[TextChunk]:
        """Chunk a book, by chapter when chapter structure is available.

        Args:
            source: Book to chunk

        Returns:
            Ordered list of TextChunks
        """
        if source.has_chapters:
            texts = self._chunk_by_chapters(source.chapters)
            logger.info(
                f"Chapter-aware chunking: {len(source.chapters)} chapters -> {len(texts)} chunks"
            )
        else:
            texts = self._chunk_paragraphs(source.text)
            logger.info(f"Paragraph chunking: {len(source.text)} chars -> {len(texts)} chunks")

        return self._to_chunks(texts)

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Chunk plain text at paragraph boundaries."""
        return self._to_chunks(self._chunk_paragraphs(text))

    def _chunk_by_chapters(self, chapters: List[Chapter]) -> List[str]:
        chunks: List[str] = []
        current = ''

        for chapter in chapters:
            chapter_text = chapter.render()

            # Oversized chapter: flush what we have, then split it on its own
            if len(chapter_text) > self.max_chars:
                if current:
                    chunks.append(current)
                    current = ''
                chunks.extend(self._chunk_paragraphs(chapter_text))
                continue

            if current and len(current) + len(SEPARATOR) + len(chapter_text) > self.max_chars:
                chunks.append(current)
                current = ''

            current = f"{current}{SEPARATOR}{chapter_text}" if current else chapter_text

        if current:
            chunks.append(current)

        return chunks

    def _chunk_paragraphs(self, text: str) -> List[str]:
        chunks: List[str] = []
        current = ''

        for paragraph in PARAGRAPH_BREAK.split(text):
            if not paragraph:
                continue

            if current and len(current) + len(SEPARATOR) + len(paragraph) > self.max_chars:
                chunks.append(current)
                current = ''

            current = f"{current}{SEPARATOR}{paragraph}" if current else paragraph

        if current:
            chunks.append(current)

        return chunks

    def _to_chunks(self, texts: List[str]) -> List[TextChunk]:
        return [TextChunk(index=i, text=text) for i, text in enumerate(texts)]
