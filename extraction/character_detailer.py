"""Per-character profile generation."""
from functools import partial
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from execution.llm_client import BaseLLMClient, Completion, LLMError
from execution.retry_handler import RetryHandler
from execution.worker_pool import WorkerPool
from extraction import prompts
from extraction.budget import ContextBudget
from extraction.continuation import ContinuationController
from extraction.models import CharacterDetail, CharacterSummary, PipelinePolicy, Roster
from extraction.repair import ResponseParseError, ResponseValidationError, parse_model_json
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)


def is_item_failure(error: BaseException) -> bool:
    """Any LLM or parse failure is worth another full attempt."""
    return isinstance(error, (LLMError, ResponseParseError))


def validate_detail(data: Any, character: CharacterSummary) -> CharacterDetail:
    """Build a CharacterDetail, filling gaps with empty defaults.

    The roster entry supplies the name, and the role when the reply has none.

    Raises:
        ResponseValidationError: If the reply is not a profile object at all
    """
    # Some models wrap the profile in a list or a {"character": {...}} envelope
    if isinstance(data, list) and len(data) == 1:
        data = data[0]
    if isinstance(data, dict) and isinstance(data.get("character"), dict):
        data = data["character"]
    if not isinstance(data, dict):
        raise ResponseValidationError(f"Profile for {character.name} is not a JSON object")

    fields = dict(data)
    fields["name"] = character.name
    if not fields.get("role"):
        fields["role"] = character.role

    try:
        return CharacterDetail.model_validate(fields)
    except ValidationError as e:
        raise ResponseValidationError(f"Invalid profile for {character.name}: {e}") from e


class CharacterDetailer:
    """Second phase: expands each roster entry into a full profile.

    Items run in parallel through a WorkerPool. Each item is retried from
    scratch on failure and resolves to None once its attempts run out, so one
    bad character never sinks the batch.
    """

    def __init__(
        self,
        client: BaseLLMClient,
        model: str,
        budget: ContextBudget,
        policy: PipelinePolicy,
        max_parallel: int = config.MAX_PARALLEL_DETAILS,
        retry_handler: Optional[RetryHandler] = None,
        notify: Optional[Callable[[str], None]] = None
    ):
        self.client = client
        self.model = model
        self.budget = budget
        self.policy = policy
        self.pool = WorkerPool(max_parallel)
        self.retry_handler = retry_handler if retry_handler is not None else RetryHandler(max_retries=policy.max_retries)
        self.notify = notify or (lambda message: None)

    async def detail_all(self, roster: Roster, text: str) -> List[Optional[CharacterDetail]]:
        """Generate profiles for every roster entry, in roster order.

        Returns:
            One entry per roster character; None where generation failed
        """
        total = len(roster.characters)
        logger.info(f"Generating {total} character profiles ({self.pool.max_workers} in parallel)")

        async def _handle(index: int, character: CharacterSummary) -> Optional[CharacterDetail]:
            self.notify(f"Writing profile {index + 1} of {total}: {character.name}...")
            detail = await self.detail_one(character, roster.characters, text)
            if detail is not None:
                self.notify(f"Finished profile for {character.name}")
            return detail

        return await self.pool.run(roster.characters, _handle)

    async def detail_one(
        self,
        character: CharacterSummary,
        roster: List[CharacterSummary],
        text: str
    ) -> Optional[CharacterDetail]:
        """Generate one profile, or None after exhausting retries."""
        prompt = prompts.character_detail_prompt(character, roster, text)
        controller = ContinuationController(self._send, self.policy.max_continuations)
        validate = partial(self._validate, character=character)

        try:
            return await self.retry_handler.execute_with_retry(
                controller.complete,
                prompt,
                validate,
                label=f"Profile for {character.name}",
                retry_on=is_item_failure,
            )
        except (LLMError, ResponseParseError) as e:
            logger.error(
                f"Skipping {character.name} after {self.retry_handler.max_retries} attempt(s): {e}"
            )
            self.notify(f"Could not generate a profile for {character.name}, skipping")
            return None

    async def _send(self, prompt: str, allow_empty: bool) -> Completion:
        return await self.client.chat(
            self.model, prompt, self.budget.max_response_tokens, allow_empty
        )

    @staticmethod
    def _validate(content: str, allow_truncation_repair: bool, character: CharacterSummary) -> CharacterDetail:
        return validate_detail(parse_model_json(content, allow_truncation_repair), character)
