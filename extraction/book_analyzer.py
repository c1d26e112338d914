"""Book analysis pipeline: budget, reduction, roster, profiles."""
from functools import partial
from typing import Optional

from execution.llm_client import BaseLLMClient, LLMError
from execution.retry_handler import RetryHandler
from extraction.budget import ContextBudget, compute_budget
from extraction.character_detailer import CharacterDetailer
from extraction.models import AnalysisResult, PipelinePolicy
from extraction.reducer import TextReducer
from extraction.roster_extractor import DEFAULT_BOOK_TITLE, ExtractionError, RosterExtractor
from ingestion.models import BookSource
from monitoring.progress_tracker import ProgressTracker
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)


class AnalysisError(Exception):
    """Raised when the pipeline cannot produce any result."""
    pass


class BookAnalyzer:
    """Turns a book into a cast of characters plus world info."""

    def __init__(
        self,
        client: BaseLLMClient,
        model: str = config.LLM_MODEL,
        policy: Optional[PipelinePolicy] = None,
        max_parallel: int = config.MAX_PARALLEL_DETAILS,
        progress: Optional[ProgressTracker] = None,
        retry_handler: Optional[RetryHandler] = None
    ):
        """Initialize analyzer.

        Args:
            client: LLM provider client
            model: Model id used for every call
            policy: Retry/continuation/reduction bounds
            max_parallel: Profiles generated at once
            progress: Tracker receiving milestones (a private one if None)
            retry_handler: Shared retry handler (built from the policy if None)
        """
        self.client = client
        self.model = model
        self.policy = policy if policy is not None else PipelinePolicy()
        self.max_parallel = max_parallel
        self.progress = progress if progress is not None else ProgressTracker()
        self.retry_handler = retry_handler if retry_handler is not None else RetryHandler(max_retries=self.policy.max_retries)

        logger.info(f"BookAnalyzer initialized with model: {model}")

    async def resolve_budget(self, context_length: Optional[int] = None) -> ContextBudget:
        """Budget from an explicit context length, else from the model listing."""
        if context_length:
            return compute_budget(context_length)

        try:
            info = await self.client.get_model_info(self.model)
        except LLMError as e:
            logger.warning(f"Could not fetch model metadata, using default context length: {e}")
            info = None

        if info is None:
            return compute_budget()
        return compute_budget(info.context_length, info.max_completion_tokens)

    async def analyze(
        self,
        source: BookSource,
        context_length: Optional[int] = None,
        session_id: Optional[str] = None
    ) -> AnalysisResult:
        """Run the full pipeline.

        Args:
            source: Book text and optional chapters
            context_length: Model context window in tokens (looked up if None)
            session_id: Progress session id (generated if None)

        Returns:
            AnalysisResult with every profile that could be generated

        Raises:
            AnalysisError: If roster extraction fails or no profile succeeds
        """
        with self.progress.session(session_id) as sid:
            notify = partial(self.progress.notify, sid)

            budget = await self.resolve_budget(context_length)
            logger.info(
                f"Book: {len(source.text)} chars, max input: {budget.max_chars_for_input} chars"
            )

            text = source.text
            if not budget.fits(text):
                reducer = TextReducer(
                    self.client, self.model, self.policy, self.retry_handler, notify
                )
                text = await reducer.reduce(source, budget)

            notify(f"Sending {len(text):,} characters to AI ({self.model})...")
            extractor = RosterExtractor(
                self.client, self.model, budget, self.policy, self.retry_handler, notify
            )
            try:
                roster = await extractor.extract(text)
            except ExtractionError as e:
                raise AnalysisError(f"AI analysis failed: {e}") from e

            notify(f"Found {len(roster.characters)} characters, writing detailed profiles...")
            detailer = CharacterDetailer(
                self.client, self.model, budget, self.policy, self.max_parallel,
                self.retry_handler, notify
            )
            details = await detailer.detail_all(roster, text)

            characters = [detail for detail in details if detail is not None]
            if not characters:
                raise AnalysisError(
                    f"AI analysis failed: none of the {len(roster.characters)} character profiles could be generated"
                )
            if len(characters) < len(roster.characters):
                logger.warning(
                    f"Dropped {len(roster.characters) - len(characters)} of {len(roster.characters)} characters"
                )

            book_title = roster.book_title
            if book_title == DEFAULT_BOOK_TITLE and source.title:
                book_title = source.title

            notify(f"AI analysis complete - {len(characters)} characters")
            logger.info(f"Analysis complete: {len(characters)} characters for '{book_title}'")

            return AnalysisResult(
                book_title=book_title,
                characters=characters,
                world_info=roster.world_info,
                model=self.model,
            )
