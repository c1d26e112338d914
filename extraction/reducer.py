"""Recursive summarization of books that exceed the input budget.

Reduction is lossy and best-effort: when summarization cannot bring the text
under budget, the text is hard-truncated instead of failing the run.
"""
from typing import Callable, List, Optional

from execution.llm_client import BaseLLMClient, LLMError
from execution.retry_handler import RetryHandler
from extraction import prompts
from extraction.budget import ContextBudget
from extraction.models import PipelinePolicy
from ingestion.chunker import BookChunker
from ingestion.models import BookSource, TextChunk
from utils.logger import setup_logger

logger = setup_logger(__name__)

SUMMARY_SEPARATOR = "\n\n---\n\n"
TRUNCATION_MARKER = "\n\n[... text truncated to fit the model's context window ...]"


def truncate_to_budget(text: str, max_chars: int) -> str:
    """Cut text to max_chars, ending with TRUNCATION_MARKER when room allows."""
    if len(text) <= max_chars:
        return text
    keep = max_chars - len(TRUNCATION_MARKER)
    if keep <= 0:
        return text[:max_chars]
    return text[:keep] + TRUNCATION_MARKER


class TextReducer:
    """Shrinks oversized book text by chunked, sequential summarization."""

    def __init__(
        self,
        client: BaseLLMClient,
        model: str,
        policy: PipelinePolicy,
        retry_handler: Optional[RetryHandler] = None,
        notify: Optional[Callable[[str], None]] = None
    ):
        self.client = client
        self.model = model
        self.policy = policy
        self.retry_handler = retry_handler if retry_handler is not None else RetryHandler(max_retries=policy.max_retries)
        self.notify = notify or (lambda message: None)
        self.calls_made = 0

    async def reduce(self, source: BookSource, budget: ContextBudget) -> str:
        """Return a version of the book that fits ``budget.max_chars_for_input``.

        Args:
            source: Book to reduce
            budget: Budget of the model that will read the result

        Returns:
            Summarized (and, as a last resort, truncated) text
        """
        if budget.fits(source.text):
            return source.text

        self.notify("Book too large, chunking into smaller pieces...")
        chunker = BookChunker(budget.chunk_chars)
        chunks = chunker.chunk(source)
        logger.info(
            f"Reducing {len(source.text)} chars to fit {budget.max_chars_for_input}: {len(chunks)} chunks"
        )

        # A chunk whose summary fails keeps its own head, sized to its share
        share = max(1, budget.max_chars_for_input // len(chunks))
        combined = await self._summarize_chunks(chunks, budget, fallback_chars=share)

        passes = 0
        while not budget.fits(combined) and passes < self.policy.max_reduction_passes:
            passes += 1
            logger.info(
                f"Combined summary still too large ({len(combined)} chars), reduction pass {passes}"
            )
            self.notify(f"Summary still too large, condensing again (pass {passes})...")
            try:
                combined = await self._summarize_chunks(
                    chunker.chunk_text(combined), budget, fallback_chars=None
                )
            except LLMError as e:
                logger.warning(f"Reduction pass {passes} failed, truncating instead: {e}")
                break

        if not budget.fits(combined):
            logger.warning(
                f"Still {len(combined)} chars after {passes} reduction pass(es), truncating to {budget.max_chars_for_input}"
            )
            combined = truncate_to_budget(combined, budget.max_chars_for_input)

        logger.info(f"Reduced book to {len(combined)} chars")
        return combined

    async def _summarize_chunks(
        self,
        chunks: List[TextChunk],
        budget: ContextBudget,
        fallback_chars: Optional[int]
    ) -> str:
        """Summarize chunks one after another.

        With ``fallback_chars`` set, a failed chunk is replaced by its first
        ``fallback_chars`` characters; otherwise the failure propagates.
        """
        summaries = []
        for chunk in chunks:
            self.notify(f"Summarizing chunk {chunk.index + 1} of {len(chunks)}...")
            try:
                summaries.append(await self._summarize(chunk.text, budget))
            except LLMError as e:
                if fallback_chars is None:
                    raise
                logger.warning(f"Summary of chunk {chunk.index + 1} failed, keeping its opening: {e}")
                summaries.append(chunk.text[:fallback_chars])

        return SUMMARY_SEPARATOR.join(summaries)

    async def _summarize(self, text: str, budget: ContextBudget) -> str:
        self.calls_made += 1
        completion = await self.retry_handler.execute_with_retry(
            self.client.chat,
            self.model,
            prompts.summarize_chunk_prompt(text),
            budget.max_response_tokens,
        )
        return completion.content.strip()
