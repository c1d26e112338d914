"""Character roster and world info extraction."""
from typing import Any, Callable, Optional

from pydantic import ValidationError

from execution.llm_client import BaseLLMClient, Completion, LLMError
from execution.retry_handler import RetryHandler
from extraction import prompts
from extraction.budget import ContextBudget
from extraction.continuation import ContinuationController
from extraction.models import CharacterSummary, PipelinePolicy, Roster, WorldInfo
from extraction.repair import ResponseParseError, ResponseValidationError, parse_model_json
from utils.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_BOOK_TITLE = "Unknown Book"


class ExtractionError(Exception):
    """Raised when no usable roster can be extracted. Fatal to the run."""
    pass


def validate_roster(data: Any) -> Roster:
    """Turn parsed reply data into a Roster.

    Entries missing a name or role are dropped; world info and the book
    title fall back to defaults.

    Raises:
        ResponseValidationError: If no usable characters remain
    """
    if not isinstance(data, dict):
        raise ResponseValidationError("AI response is not a JSON object")

    raw_characters = data.get("characters")
    if not isinstance(raw_characters, list):
        raise ResponseValidationError("AI response missing characters array")

    characters = []
    seen = set()
    for entry in raw_characters:
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name") or "").strip()
        role = str(entry.get("role") or "").strip()
        if not name or not role:
            logger.warning(f"Dropping roster entry without name or role: {str(entry)[:120]}")
            continue
        if name.lower() in seen:
            continue
        seen.add(name.lower())
        characters.append(CharacterSummary(
            name=name,
            role=role,
            brief_description=entry.get("briefDescription") or entry.get("description") or "",
        ))

    if not characters:
        raise ResponseValidationError("AI response contained no characters with a name and role")

    world_info = WorldInfo()
    raw_world = data.get("worldInfo")
    if isinstance(raw_world, dict):
        try:
            world_info = WorldInfo.model_validate(raw_world)
        except ValidationError as e:
            logger.warning(f"Malformed worldInfo, using empty structure: {e}")
    else:
        logger.warning("AI response missing worldInfo, using empty structure")

    title = data.get("bookTitle")
    title = title.strip() if isinstance(title, str) else ""

    return Roster(
        book_title=title or DEFAULT_BOOK_TITLE,
        characters=characters,
        world_info=world_info,
    )


class RosterExtractor:
    """First phase: one request for the cast list plus world knowledge."""

    def __init__(
        self,
        client: BaseLLMClient,
        model: str,
        budget: ContextBudget,
        policy: PipelinePolicy,
        retry_handler: Optional[RetryHandler] = None,
        notify: Optional[Callable[[str], None]] = None
    ):
        self.client = client
        self.model = model
        self.budget = budget
        self.policy = policy
        self.retry_handler = retry_handler if retry_handler is not None else RetryHandler(max_retries=policy.max_retries)
        self.notify = notify or (lambda message: None)

    async def extract(self, text: str) -> Roster:
        """Extract the roster from (possibly reduced) book text.

        Raises:
            ExtractionError: If the request fails or no valid roster comes back
        """
        logger.info(f"Sending roster request: {len(text)} chars to {self.model}")
        controller = ContinuationController(self._send, self.policy.max_continuations)

        try:
            roster = await controller.complete(
                prompts.roster_prompt(text), self._validate, label="Roster extraction"
            )
        except ResponseParseError as e:
            logger.error(f"Roster extraction failed: {e}")
            raise ExtractionError(f"Could not read the character roster from the AI response. {e}") from e
        except LLMError as e:
            logger.error(f"Roster extraction failed: {e}")
            raise ExtractionError(str(e)) from e

        logger.info(
            f"Parsed {len(roster.characters)} characters, {roster.world_info.entry_count} world entries"
        )
        self.notify(f"Parsed {len(roster.characters)} characters from AI response")
        return roster

    async def _send(self, prompt: str, allow_empty: bool) -> Completion:
        return await self.retry_handler.execute_with_retry(
            self.client.chat, self.model, prompt, self.budget.max_response_tokens, allow_empty
        )

    @staticmethod
    def _validate(content: str, allow_truncation_repair: bool) -> Roster:
        return validate_roster(parse_model_json(content, allow_truncation_repair))
